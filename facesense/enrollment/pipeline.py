"""Enrollment Pipeline

Captures one high-quality face sample per "remember me" request, saves the
normalized face crop and appends the face embedding to the identity's
descriptor list. Requests are deduplicated by correlation id, so repeated
triggers from the same utterance cause no additional persistence calls.

Steps per request:
    1. Reject if the frame source has no usable frame
    2. Single-face detection, retried on "no face" (250 ms) and on detector
       errors (300 ms) up to ``max_face_attempts`` attempts
    3. Crop the face box with 30% padding (clamped to the frame), resize to a
       224x224 square and PNG-encode
    4. Save the image (failure logged, not fatal)
    5. Append the embedding (failure logged, not fatal) and emit invalidation
    6. Report how many face images were saved
"""

import asyncio
import logging
from typing import Callable, List, Optional, Tuple

import cv2
import numpy as np

from facesense.models.enums import EnrollmentStatus
from facesense.models.features import BoundingBox, Detection
from facesense.models.frames import VideoFrame
from facesense.models.interfaces import (
    DescriptorRepository,
    FrameSource,
    PerceptionEngine,
    PersistenceError
)
from facesense.models.results import EnrollmentRequest, EnrollmentResult
from facesense.analysis.debounce import IdempotencyGuard
from facesense.config.config_loader import config


logger = logging.getLogger(__name__)


class EnrollmentError(Exception):
    """Exception raised when a face sample cannot be cropped or encoded"""
    pass


def crop_face(image: np.ndarray, box: BoundingBox, padding: float = 0.3) -> np.ndarray:
    """Crop a face box with padding, clamped to the image bounds.

    The padding is ``round(max(width, height) * padding)`` pixels on each side.

    Args:
        image: RGB image (H, W, 3)
        box: Face bounding box
        padding: Padding as a fraction of the larger box side

    Returns:
        The cropped region (a view into ``image``)

    Raises:
        EnrollmentError: If the padded box does not overlap the image
    """
    height, width = image.shape[:2]
    pad = round(max(box.width, box.height) * padding)

    sx = max(0.0, box.x - pad)
    sy = max(0.0, box.y - pad)
    sw = min(width - sx, box.width + pad * 2)
    sh = min(height - sy, box.height + pad * 2)

    x0, y0 = int(round(sx)), int(round(sy))
    x1 = min(width, int(round(sx + sw)))
    y1 = min(height, int(round(sy + sh)))

    if x1 <= x0 or y1 <= y0:
        raise EnrollmentError(f"Face box {box} lies outside the {width}x{height} frame")
    return image[y0:y1, x0:x1]


def encode_png(image: np.ndarray, size: int = 224) -> bytes:
    """Resize an RGB image to a square and encode it as PNG.

    Raises:
        EnrollmentError: If encoding fails
    """
    if image.dtype != np.uint8:
        image = np.clip(image, 0, 255).astype(np.uint8)

    resized = cv2.resize(image, (size, size), interpolation=cv2.INTER_AREA)
    ok, buffer = cv2.imencode('.png', cv2.cvtColor(resized, cv2.COLOR_RGB2BGR))
    if not ok:
        raise EnrollmentError("PNG encoding failed")
    return buffer.tobytes()


class EnrollmentPipeline:
    """Single-shot face enrollment.

    Attributes:
        frame_source: Provides the latest video frame
        perception: Face perception engine
        repository: Descriptor store and artifact persistence
        max_face_attempts: Detection attempts per sample before giving up
        retry_backoff: Delay after "no face found"
        error_backoff: Delay after a detector error
        crop_padding: Padding fraction around the face box
        output_size: Side of the normalized square image
        samples_per_request: Samples captured per request
    """

    def __init__(
        self,
        frame_source: FrameSource,
        perception: PerceptionEngine,
        repository: DescriptorRepository,
        max_face_attempts: Optional[int] = None,
        retry_backoff: Optional[float] = None,
        error_backoff: Optional[float] = None,
        crop_padding: Optional[float] = None,
        output_size: Optional[int] = None,
        samples_per_request: Optional[int] = None,
        idempotency_window: Optional[int] = None
    ):
        self.frame_source = frame_source
        self.perception = perception
        self.repository = repository

        def _setting(value, key, default):
            return value if value is not None else config.get(key, default)

        self.max_face_attempts = _setting(max_face_attempts, 'enrollment.max_face_attempts', 20)
        self.retry_backoff = _setting(retry_backoff, 'enrollment.retry_backoff', 0.25)
        self.error_backoff = _setting(error_backoff, 'enrollment.error_backoff', 0.3)
        self.crop_padding = _setting(crop_padding, 'enrollment.crop_padding', 0.3)
        self.output_size = _setting(output_size, 'enrollment.output_size', 224)
        self.samples_per_request = _setting(samples_per_request, 'enrollment.samples_per_request', 1)

        if self.max_face_attempts < 1:
            raise ValueError(f"max_face_attempts must be >= 1, got {self.max_face_attempts}")
        if self.samples_per_request < 1:
            raise ValueError(f"samples_per_request must be >= 1, got {self.samples_per_request}")

        self._guard = IdempotencyGuard(
            window=_setting(idempotency_window, 'enrollment.idempotency_window', 64)
        )
        self._invalidation_listeners: List[Callable[[], None]] = []

        logger.info(
            f"EnrollmentPipeline initialized with max_face_attempts={self.max_face_attempts}, "
            f"output_size={self.output_size}"
        )

    def add_invalidation_listener(self, listener: Callable[[], None]):
        """Register a callback run after a descriptor was appended"""
        self._invalidation_listeners.append(listener)

    async def enroll(self, request: EnrollmentRequest) -> Optional[EnrollmentResult]:
        """Handle one enrollment request.

        Args:
            request: Correlation id and identity label

        Returns:
            EnrollmentResult, or None if the correlation id was already handled
        """
        if not self._guard.check_and_mark(request.correlation_id):
            logger.info(f"Enrollment request {request.correlation_id} already handled, ignoring")
            return None

        label = request.identity_label.strip()
        logger.info(f"Enrollment started for '{label}' (request {request.correlation_id})")

        if self._usable_frame() is None:
            logger.warning(f"No usable frame for enrollment of '{label}', rejecting request")
            return EnrollmentResult(
                identity_label=label,
                saved_artifact_count=0,
                status=EnrollmentStatus.FRAME_UNAVAILABLE
            )

        urls: List[str] = []
        appended = 0
        captured = 0

        for index in range(self.samples_per_request):
            sample = await self._capture_face(label)
            if sample is None:
                break
            captured += 1
            frame, detection = sample

            url = await self._save_image(label, index, frame, detection)
            if url is not None:
                urls.append(url)

            if detection.embedding is not None and await self._append_descriptor(label, detection):
                appended += 1

        status = EnrollmentStatus.COMPLETED if captured else EnrollmentStatus.NO_FACE
        result = EnrollmentResult(
            identity_label=label,
            saved_artifact_count=len(urls),
            artifact_urls=tuple(urls),
            descriptors_appended=appended,
            status=status
        )
        logger.info(
            f"Enrollment finished for '{label}': status={status.value}, "
            f"images={len(urls)}, descriptors={appended}"
        )
        return result

    def _usable_frame(self) -> Optional[VideoFrame]:
        frame = self.frame_source.latest_frame()
        if frame is None or not frame.has_extent:
            return None
        return frame

    async def _capture_face(self, label: str) -> Optional[Tuple[VideoFrame, Detection]]:
        for attempt in range(1, self.max_face_attempts + 1):
            frame = self._usable_frame()
            if frame is None:
                await asyncio.sleep(self.retry_backoff)
                continue

            try:
                detection = await self.perception.detect_single_face(frame)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"Face detection failed during enrollment of '{label}': {e}", exc_info=True)
                await asyncio.sleep(self.error_backoff)
                continue

            if detection is not None:
                return frame, detection

            logger.debug(f"No face found for '{label}' (attempt {attempt}/{self.max_face_attempts})")
            await asyncio.sleep(self.retry_backoff)

        logger.warning(f"Gave up enrolling '{label}' after {self.max_face_attempts} attempts")
        return None

    def _artifact_name(self, label: str, index: int) -> str:
        return f"{label}.png" if index == 0 else f"{label}_{index}.png"

    async def _save_image(
        self,
        label: str,
        index: int,
        frame: VideoFrame,
        detection: Detection
    ) -> Optional[str]:
        try:
            crop = crop_face(frame.image, detection.box, self.crop_padding)
            png = encode_png(crop, self.output_size)
            return await self.repository.save_artifact(png, self._artifact_name(label, index))
        except (EnrollmentError, PersistenceError, cv2.error) as e:
            logger.error(f"Saving face image for '{label}' failed: {e}")
            return None

    async def _append_descriptor(self, label: str, detection: Detection) -> bool:
        try:
            await self.repository.append_descriptor(label, detection.embedding.tolist())
        except PersistenceError as e:
            logger.error(f"Saving descriptor for '{label}' failed: {e}")
            return False

        for listener in list(self._invalidation_listeners):
            try:
                listener()
            except Exception as e:
                logger.error(f"Invalidation listener failed: {e}", exc_info=True)
        return True
