"""Face enrollment pipeline and its chat trigger"""

from facesense.enrollment.pipeline import EnrollmentError, EnrollmentPipeline, crop_face, encode_png
from facesense.enrollment.name_trigger import NameTrigger, extract_name

__all__ = ['EnrollmentError', 'EnrollmentPipeline', 'NameTrigger', 'crop_face', 'encode_png', 'extract_name']
