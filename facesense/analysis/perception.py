"""Perception engine adapters

The face model itself is an external collaborator. Most face libraries expose
blocking calls, so ``ExecutorPerceptionEngine`` runs them in a thread pool and
hands the detections back to the event loop, where the sampling loop applies
them in one synchronous block.
"""

import asyncio
import logging
from concurrent.futures import Executor
from typing import Callable, List, Optional

from facesense.models.features import Detection
from facesense.models.frames import VideoFrame
from facesense.models.interfaces import PerceptionEngine


logger = logging.getLogger(__name__)


DetectFacesFn = Callable[[VideoFrame], List[Detection]]
DetectSingleFaceFn = Callable[[VideoFrame], Optional[Detection]]


class ExecutorPerceptionEngine(PerceptionEngine):
    """Wraps blocking detection functions as an async perception engine.

    Attributes:
        detect_faces_fn: Blocking multi-face detector
        detect_single_face_fn: Blocking single-face detector; defaults to the
            first result of ``detect_faces_fn``
        executor: Executor to run on, None for the loop's default pool
    """

    def __init__(
        self,
        detect_faces_fn: DetectFacesFn,
        detect_single_face_fn: Optional[DetectSingleFaceFn] = None,
        executor: Optional[Executor] = None
    ):
        self.detect_faces_fn = detect_faces_fn
        self.detect_single_face_fn = detect_single_face_fn
        self.executor = executor

    async def detect_faces(self, frame: VideoFrame) -> List[Detection]:
        loop = asyncio.get_running_loop()
        detections = await loop.run_in_executor(self.executor, self.detect_faces_fn, frame)
        return list(detections or [])

    async def detect_single_face(self, frame: VideoFrame) -> Optional[Detection]:
        if self.detect_single_face_fn is None:
            detections = await self.detect_faces(frame)
            return detections[0] if detections else None

        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self.executor, self.detect_single_face_fn, frame)


class NullPerceptionEngine(PerceptionEngine):
    """Engine that never detects a face.

    Used when no ``perception.engine`` is configured so the pipeline can still
    run end to end (stream decoding, store synchronization).
    """

    def __init__(self):
        logger.warning("No perception engine configured, face detection is disabled")

    async def detect_faces(self, frame: VideoFrame) -> List[Detection]:
        return []

    async def detect_single_face(self, frame: VideoFrame) -> Optional[Detection]:
        return None
