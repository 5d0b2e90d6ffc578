"""Interfaces of the external collaborators"""

from abc import ABC, abstractmethod
from typing import Awaitable, Callable, List, Optional, Sequence

from facesense.models.features import Detection
from facesense.models.frames import VideoFrame
from facesense.models.results import StoreFetchResult


# Async callable that cancels an invalidation subscription
Unsubscribe = Callable[[], Awaitable[None]]


class PersistenceError(Exception):
    """Exception raised when a descriptor or artifact cannot be persisted"""
    pass


class FrameSource(ABC):
    """Provides the most recent video frame"""

    @abstractmethod
    def latest_frame(self) -> Optional[VideoFrame]:
        """Get the most recent frame

        Returns:
            Latest VideoFrame or None if no frame has arrived yet
        """
        pass


class PerceptionEngine(ABC):
    """Black-box face perception model

    Implementations return, per face, a bounding box, landmarks, a 7-way
    expression probability vector and a fixed-length embedding.
    """

    @abstractmethod
    async def detect_faces(self, frame: VideoFrame) -> List[Detection]:
        """Detect every face in the frame

        Args:
            frame: Frame to analyze

        Returns:
            Zero or more detections
        """
        pass

    @abstractmethod
    async def detect_single_face(self, frame: VideoFrame) -> Optional[Detection]:
        """Detect the single most confident face in the frame

        Args:
            frame: Frame to analyze

        Returns:
            The detection, or None if no face was found
        """
        pass


class DescriptorRepository(ABC):
    """Authoritative store of enrolled identity embeddings"""

    @abstractmethod
    async def fetch_descriptor_store(self) -> StoreFetchResult:
        """Fetch a full copy of the descriptor store

        Returns:
            FOUND with the store content, NOT_FOUND if the store was never
            initialized, ERROR with a reason on fetch/parse failure
        """
        pass

    @abstractmethod
    async def append_descriptor(self, label: str, embedding: Sequence[float]) -> None:
        """Append one embedding to an identity, creating the identity if needed

        Raises:
            PersistenceError: If the embedding could not be stored
        """
        pass

    @abstractmethod
    async def save_artifact(self, data: bytes, name: str) -> str:
        """Persist an artifact (e.g. a PNG face crop)

        Returns:
            Location the artifact can be served from

        Raises:
            PersistenceError: If the artifact could not be stored
        """
        pass

    @abstractmethod
    async def subscribe_invalidation(self, on_change: Callable[[], None]) -> Unsubscribe:
        """Subscribe to store change notifications

        Delivery is at-least-once; consumers must tolerate duplicates.

        Args:
            on_change: Called (on the event loop) whenever the store changed

        Returns:
            Async callable that cancels the subscription
        """
        pass
