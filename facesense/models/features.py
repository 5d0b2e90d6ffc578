"""Data models for per-face perception output"""

from dataclasses import dataclass, field
from typing import Dict, Optional
import numpy as np


@dataclass(frozen=True)
class BoundingBox:
    """Face bounding box in pixel coordinates

    Attributes:
        x: Left edge
        y: Top edge
        width: Box width
        height: Box height
    """
    x: float
    y: float
    width: float
    height: float

    def __post_init__(self):
        """Validate box dimensions"""
        assert self.width >= 0, "Width must be non-negative"
        assert self.height >= 0, "Height must be non-negative"

    @property
    def center_x(self) -> float:
        """Horizontal center of the box"""
        return self.x + self.width / 2.0


@dataclass
class Detection:
    """One face instance detected in one frame

    Produced by the perception engine and consumed immediately by the sampling
    loop or the enrollment pipeline. Never persisted directly.

    Attributes:
        box: Face bounding box
        expressions: Mapping of emotion label to probability [0, 1]
        embedding: Fixed-length identity embedding, None if not computed
        landmarks: Landmark points, opaque to this package
    """
    box: BoundingBox
    expressions: Dict[str, float] = field(default_factory=dict)
    embedding: Optional[np.ndarray] = None
    landmarks: Optional[np.ndarray] = None

    def __post_init__(self):
        """Normalize the embedding to a 1-D float array"""
        if self.embedding is not None:
            embedding = np.asarray(self.embedding, dtype=np.float64).ravel()
            assert embedding.size > 0, "Embedding must not be empty"
            self.embedding = embedding
