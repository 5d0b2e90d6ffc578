"""Sampling Loop Module

This module drives face perception at a fixed cadence. Every tick takes the
latest frame, selects the face closest to the horizontal center, resolves its
dominant emotion and, when a matcher snapshot is available, its identity.

Ticks run as independent asyncio tasks so a slow inference call never delays
the next tick. Each tick computes everything first and then applies its
history append, result cache update and listener notifications in one
synchronous block, so two overlapping ticks never interleave partial updates.
"""

import asyncio
import logging
import time
from typing import Callable, List, Optional, Sequence, Set

from facesense.models.features import Detection
from facesense.models.interfaces import FrameSource, PerceptionEngine
from facesense.models.results import MatchResult, TickResult
from facesense.analysis.emotion import EmotionExtractor
from facesense.identity.matcher import IdentityMatcher
from facesense.config.config_loader import config


logger = logging.getLogger(__name__)


FaceEmotionListener = Callable[[str], None]
RecognitionListener = Callable[[str, float], None]
MatcherProvider = Callable[[], Optional[IdentityMatcher]]


def select_primary_detection(
    detections: Sequence[Detection],
    frame_width: float
) -> Optional[Detection]:
    """Select the detection whose box center is closest to the frame's x-center.

    Ties go to the first detection encountered. All other faces are dropped.

    Args:
        detections: Detections of one frame
        frame_width: Frame width in pixels

    Returns:
        The selected detection, or None for an empty list
    """
    midpoint = frame_width / 2.0
    best = None
    best_offset = None
    for detection in detections:
        offset = abs(detection.box.center_x - midpoint)
        if best is None or offset < best_offset:
            best = detection
            best_offset = offset
    return best


class SamplingLoop:
    """Fixed-cadence face sampling.

    Attributes:
        frame_source: Provides the latest video frame
        perception: Face perception engine
        extractor: Owner of the face emotion history
        matcher_provider: Returns the current matcher snapshot, or None
        interval: Seconds between ticks
        max_inflight_ticks: Upper bound on overlapping ticks; a tick that
            would exceed it is skipped and counted in skipped_ticks
        latest_result: Most recent applied tick (cached)
    """

    def __init__(
        self,
        frame_source: FrameSource,
        perception: PerceptionEngine,
        extractor: EmotionExtractor,
        matcher_provider: Optional[MatcherProvider] = None,
        interval: Optional[float] = None,
        max_inflight_ticks: Optional[int] = None
    ):
        self.frame_source = frame_source
        self.perception = perception
        self.extractor = extractor
        self.matcher_provider = matcher_provider
        self.interval = interval if interval is not None else config.get('sampling.interval', 0.3)
        self.max_inflight_ticks = (
            max_inflight_ticks if max_inflight_ticks is not None
            else config.get('sampling.max_inflight_ticks', 4)
        )

        if self.interval <= 0:
            raise ValueError(f"interval must be positive, got {self.interval}")
        if self.max_inflight_ticks < 1:
            raise ValueError(f"max_inflight_ticks must be >= 1, got {self.max_inflight_ticks}")

        self.latest_result: Optional[TickResult] = None
        self.tick_count = 0
        self.skipped_ticks = 0

        self._face_emotion_listeners: List[FaceEmotionListener] = []
        self._recognition_listeners: List[RecognitionListener] = []
        self._inflight: Set[asyncio.Task] = set()

        logger.info(f"SamplingLoop initialized with interval={self.interval}s")

    def add_face_emotion_listener(self, listener: FaceEmotionListener):
        self._face_emotion_listeners.append(listener)

    def add_recognition_listener(self, listener: RecognitionListener):
        self._recognition_listeners.append(listener)

    async def tick(self) -> Optional[TickResult]:
        """Run one sampling step.

        Returns:
            The applied TickResult, or None when the tick was skipped (no frame,
            frame without extent, no face) or failed. Failures are logged and
            never raised.
        """
        try:
            frame = self.frame_source.latest_frame()
            if frame is None or not frame.has_extent:
                return None

            detections = await self.perception.detect_faces(frame)
            if not detections:
                return None

            detection = select_primary_detection(detections, frame.width)
            emotion = self.extractor.resolve_face_emotion(detection.expressions)

            recognition: Optional[MatchResult] = None
            matcher = self.matcher_provider() if self.matcher_provider else None
            if matcher is not None and detection.embedding is not None:
                recognition = matcher.best_match(detection.embedding)

            result = TickResult(
                frame_number=frame.frame_number,
                detection=detection,
                emotion=emotion,
                recognition=recognition,
                timestamp=time.time()
            )
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Error in sampling tick: {e}", exc_info=True)
            return None

        self._apply(result)
        return result

    def _apply(self, result: TickResult):
        # No await in here: a tick is applied as a unit
        if result.emotion is not None:
            self.extractor.record_face_emotion(result.emotion)
        self.latest_result = result
        self.tick_count += 1

        if result.emotion is not None:
            for listener in self._face_emotion_listeners:
                self._notify(listener, result.emotion)
        if result.recognition is not None:
            for listener in self._recognition_listeners:
                self._notify(listener, result.recognition.label, result.recognition.distance)

    @staticmethod
    def _notify(listener: Callable, *args):
        try:
            listener(*args)
        except Exception as e:
            logger.error(f"Sampling listener {listener!r} failed: {e}", exc_info=True)

    def _launch_tick(self):
        if len(self._inflight) >= self.max_inflight_ticks:
            self.skipped_ticks += 1
            logger.debug(f"{len(self._inflight)} ticks still in flight, skipping this tick")
            return
        task = asyncio.create_task(self.tick())
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)

    async def start(self):
        """Start the sampling timer.

        Runs until cancelled. In-flight ticks are cancelled on shutdown.
        """
        loop = asyncio.get_running_loop()
        logger.info(f"Starting sampling loop with interval={self.interval}s")
        next_tick = loop.time()

        try:
            while True:
                try:
                    self._launch_tick()

                    next_tick += self.interval
                    delay = next_tick - loop.time()
                    if delay < 0:
                        # Fell behind, realign instead of bursting
                        next_tick = loop.time()
                        delay = 0
                    await asyncio.sleep(delay)

                except asyncio.CancelledError:
                    logger.info("Sampling loop task cancelled")
                    break
        finally:
            await self._cancel_inflight()

    async def _cancel_inflight(self):
        pending = list(self._inflight)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    def get_latest_result(self) -> Optional[TickResult]:
        """Get the most recent applied tick from cache.

        Returns:
            Latest TickResult, or None before the first face was sampled
        """
        return self.latest_result
