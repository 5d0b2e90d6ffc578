"""FaceSense: face emotion sampling and identity recognition for live video"""

__version__ = "0.1.0"
