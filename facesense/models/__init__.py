"""Data models and interfaces"""

from facesense.models.frames import VideoFrame
from facesense.models.features import BoundingBox, Detection
from facesense.models.results import (
    DescriptorStore,
    EnrollmentRequest,
    EnrollmentResult,
    MatchResult,
    StoreFetchResult,
    TickResult
)
from facesense.models.enums import (
    EMOTION_LABELS,
    Emotion,
    EnrollmentStatus,
    FetchStatus,
    RefreshState,
    StreamConnection,
    StreamProtocol
)
from facesense.models.interfaces import (
    DescriptorRepository,
    FrameSource,
    PerceptionEngine,
    PersistenceError
)

__all__ = [
    # Frames
    "VideoFrame",
    # Features
    "BoundingBox",
    "Detection",
    # Results
    "DescriptorStore",
    "EnrollmentRequest",
    "EnrollmentResult",
    "MatchResult",
    "StoreFetchResult",
    "TickResult",
    # Enums
    "EMOTION_LABELS",
    "Emotion",
    "EnrollmentStatus",
    "FetchStatus",
    "RefreshState",
    "StreamConnection",
    "StreamProtocol",
    # Interfaces
    "DescriptorRepository",
    "FrameSource",
    "PerceptionEngine",
    "PersistenceError",
]
