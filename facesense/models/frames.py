"""Data model for video frames"""

from dataclasses import dataclass
import numpy as np


@dataclass
class VideoFrame:
    """Represents a single video frame from the camera or stream

    A frame with zero width or height is valid to construct: cameras deliver
    such frames while warming up, and consumers check ``has_extent`` before
    running inference on it.

    Attributes:
        image: RGB image as numpy array (H, W, 3)
        timestamp: Seconds since stream start
        frame_number: Sequential frame number
        codec: Video codec name (e.g., "h264", "mjpeg")
    """
    image: np.ndarray    # RGB image (H, W, 3)
    timestamp: float     # seconds since stream start
    frame_number: int
    codec: str = "unknown"

    def __post_init__(self):
        """Validate video frame data integrity.

        Raises:
            AssertionError: If any validation check fails
        """
        assert self.timestamp >= 0, "Timestamp must be non-negative"
        assert self.frame_number >= 0, "Frame number must be non-negative"
        assert isinstance(self.image, np.ndarray), "Image must be numpy array"
        assert len(self.image.shape) == 3, "Image must be 3D array (H, W, C)"
        assert self.image.shape[2] == 3, "Image must have 3 channels (RGB)"

    @property
    def width(self) -> int:
        return int(self.image.shape[1])

    @property
    def height(self) -> int:
        return int(self.image.shape[0])

    @property
    def has_extent(self) -> bool:
        """True when the frame has non-zero width and height"""
        return self.width > 0 and self.height > 0
