"""Data models for recognition, sampling and enrollment results"""

from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from facesense.models.enums import EnrollmentStatus, FetchStatus
from facesense.models.features import Detection


# Store content: identity label -> ordered list of embeddings
DescriptorStore = Dict[str, List[List[float]]]


@dataclass(frozen=True)
class MatchResult:
    """Result of a nearest-neighbor identity query

    Attributes:
        label: Matched identity label, or the unknown sentinel
        distance: Euclidean distance to the closest stored embedding
    """
    label: str
    distance: float


@dataclass(frozen=True)
class TickResult:
    """Everything one sampling tick applied

    Attributes:
        frame_number: Frame the detection came from
        detection: Selected (center-most) detection
        emotion: Dominant face emotion, None if the expression vector was unusable
        recognition: Identity match, None if no matcher or no embedding
        timestamp: When this result was produced (seconds)
    """
    frame_number: int
    detection: Detection
    emotion: Optional[str]
    recognition: Optional[MatchResult]
    timestamp: float


@dataclass(frozen=True)
class EnrollmentRequest:
    """A "remember me" request for one identity

    Attributes:
        correlation_id: Idempotency key of the triggering event
        identity_label: User-chosen identity name
    """
    correlation_id: str
    identity_label: str

    def __post_init__(self):
        """Validate request data"""
        if not str(self.correlation_id).strip():
            raise ValueError("correlation_id must not be empty")
        if not self.identity_label or not self.identity_label.strip():
            raise ValueError("identity_label must not be empty")


@dataclass(frozen=True)
class EnrollmentResult:
    """Outcome of one enrollment request

    Attributes:
        identity_label: Identity the samples were stored under
        saved_artifact_count: Saved face images
        artifact_urls: Locations of the saved face images
        descriptors_appended: Embeddings appended to the store
        status: Whether a face was captured
    """
    identity_label: str
    saved_artifact_count: int
    artifact_urls: Tuple[str, ...] = ()
    descriptors_appended: int = 0
    status: EnrollmentStatus = EnrollmentStatus.COMPLETED


@dataclass(frozen=True)
class StoreFetchResult:
    """Tagged result of fetching the authoritative descriptor store

    Exactly one of the variants applies:
        FOUND: ``store`` holds the fetched content
        NOT_FOUND: the store has not been initialized yet
        ERROR: the fetch or parse failed, ``reason`` says why
    """
    status: FetchStatus
    store: Optional[DescriptorStore] = None
    reason: str = ""

    @classmethod
    def found(cls, store: DescriptorStore) -> "StoreFetchResult":
        return cls(status=FetchStatus.FOUND, store=store)

    @classmethod
    def not_found(cls) -> "StoreFetchResult":
        return cls(status=FetchStatus.NOT_FOUND)

    @classmethod
    def error(cls, reason: str) -> "StoreFetchResult":
        return cls(status=FetchStatus.ERROR, reason=reason)

    @property
    def is_found(self) -> bool:
        return self.status is FetchStatus.FOUND

    @property
    def is_not_found(self) -> bool:
        return self.status is FetchStatus.NOT_FOUND
