"""Main Application Entry Point

This module wires the perception aggregation pipeline together: stream input,
store synchronizer, sampling loop and enrollment pipeline, and exposes the
caller-facing hooks (emotion and recognition listeners, matcher-ready
listeners, enrollment triggers).

Usage:
    python -m facesense.main <video_path | device | stream_url>
"""

import asyncio
import importlib
import logging
import signal
import sys
from pathlib import Path
from typing import Callable, Hashable, Optional

from facesense.models.interfaces import DescriptorRepository, PerceptionEngine
from facesense.models.results import EnrollmentRequest, EnrollmentResult
from facesense.analysis.emotion import EmotionExtractor, parse_scores_from_text
from facesense.analysis.perception import NullPerceptionEngine
from facesense.analysis.sampling import SamplingLoop
from facesense.identity.matcher import IdentityMatcher
from facesense.identity.repository import InMemoryDescriptorRepository
from facesense.identity.redis_repository import RedisDescriptorRepository
from facesense.identity.synchronizer import StoreSynchronizer
from facesense.enrollment.name_trigger import NameTrigger
from facesense.enrollment.pipeline import EnrollmentPipeline
from facesense.input.frame_source import LatestFrameSource, StreamFrameReader
from facesense.config.config_loader import config


logger = logging.getLogger(__name__)


def setup_logging(level: Optional[str] = None, log_file: Optional[str] = None):
    """Configure root logging with a file handler and a stdout handler"""
    level = level or config.get('logging.level', 'INFO')
    log_file = log_file or config.get('logging.file', 'logs/facesense.log')
    Path(log_file).parent.mkdir(parents=True, exist_ok=True)

    logging.basicConfig(
        level=getattr(logging, str(level).upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.FileHandler(log_file),
            logging.StreamHandler(sys.stdout)
        ]
    )


def load_perception_engine(reference: Optional[str] = None) -> PerceptionEngine:
    """Instantiate the configured perception engine.

    Args:
        reference: ``"package.module:factory"``; the factory is called without
            arguments and must return a PerceptionEngine. Defaults to
            ``perception.engine`` from the configuration.

    Raises:
        ValueError: If the reference is malformed or the factory returns
            something else than a PerceptionEngine
    """
    reference = reference or config.get('perception.engine')
    if not reference:
        return NullPerceptionEngine()

    module_name, sep, attr = reference.partition(':')
    if not sep or not module_name or not attr:
        raise ValueError(f"Perception engine must be 'module:factory', got {reference!r}")

    factory = getattr(importlib.import_module(module_name), attr)
    engine = factory()
    if not isinstance(engine, PerceptionEngine):
        raise ValueError(f"{reference} returned {type(engine).__name__}, not a PerceptionEngine")

    logger.info(f"Perception engine loaded from {reference}")
    return engine


def build_repository(backend: Optional[str] = None) -> DescriptorRepository:
    """Create the descriptor repository for ``persistence.backend``"""
    backend = backend or config.get('persistence.backend', 'memory')
    if backend == 'redis':
        return RedisDescriptorRepository()
    if backend == 'memory':
        return InMemoryDescriptorRepository()
    raise ValueError(f"Unknown persistence backend: {backend!r}")


class FaceSenseService:
    """Main orchestrator of the perception pipeline.

    Owns every process-scoped object (frame source, emotion histories,
    matcher snapshot) and passes them to the components that use them:

    1. Stream Frame Reader (decodes video into the latest-frame holder)
    2. Store Synchronizer (keeps the identity matcher current)
    3. Sampling Loop (face emotion and recognition every 300 ms)
    4. Enrollment Pipeline (adds identities on request)

    Long-running components run as independent asyncio tasks.

    Attributes:
        frame_source: Latest decoded frame
        stream_reader: PyAV stream decoder
        extractor: Face and text emotion histories
        synchronizer: Matcher snapshot owner
        sampling_loop: Fixed-cadence sampler
        enrollment: Enrollment pipeline
        name_trigger: Detects self-introductions in chat messages
        tasks: Running asyncio tasks
    """

    def __init__(
        self,
        perception: Optional[PerceptionEngine] = None,
        repository: Optional[DescriptorRepository] = None,
        frame_source: Optional[LatestFrameSource] = None
    ):
        logger.info("Initializing FaceSenseService...")

        self.perception = perception or load_perception_engine()
        self.repository = repository or build_repository()
        self.frame_source = frame_source or LatestFrameSource()

        self.stream_reader = StreamFrameReader(self.frame_source)
        self.extractor = EmotionExtractor()
        self.synchronizer = StoreSynchronizer(self.repository)
        self.sampling_loop = SamplingLoop(
            frame_source=self.frame_source,
            perception=self.perception,
            extractor=self.extractor,
            matcher_provider=self.synchronizer.current_matcher
        )
        self.enrollment = EnrollmentPipeline(
            frame_source=self.frame_source,
            perception=self.perception,
            repository=self.repository
        )
        self.enrollment.add_invalidation_listener(self.synchronizer.request_refresh)
        self.name_trigger = NameTrigger()

        self.tasks = []
        self.shutdown_event = asyncio.Event()

        logger.info("FaceSenseService initialized successfully")

    # Caller-facing hooks

    def add_face_emotion_listener(self, listener: Callable[[str], None]):
        self.sampling_loop.add_face_emotion_listener(listener)

    def add_recognition_listener(self, listener: Callable[[str, float], None]):
        self.sampling_loop.add_recognition_listener(listener)

    def add_matcher_ready_listener(self, listener: Callable[[IdentityMatcher], None]):
        self.synchronizer.add_matcher_ready_listener(listener)

    async def trigger_enrollment(self, correlation_id: str, identity_label: str) -> Optional[EnrollmentResult]:
        """Enroll the current face under ``identity_label``.

        Returns:
            EnrollmentResult, or None for an already handled correlation id
        """
        request = EnrollmentRequest(correlation_id=correlation_id, identity_label=identity_label)
        return await self.enrollment.enroll(request)

    async def handle_user_message(self, message_id: Hashable, text: str) -> Optional[EnrollmentResult]:
        """Enroll when a chat message introduces the user's name"""
        request = self.name_trigger.process(message_id, text)
        if request is None:
            return None
        return await self.enrollment.enroll(request)

    def handle_text_emotion(self, message_id: Hashable, reply_text: str) -> Optional[str]:
        """Record the dominant emotion of a text classifier reply"""
        scores = parse_scores_from_text(reply_text)
        return self.extractor.update_text_emotion(scores, message_id=message_id)

    def current_emotion(self) -> str:
        return self.extractor.current_emotion()

    # Lifecycle

    async def start_components(self):
        """Start the synchronizer and the sampling loop as asyncio tasks"""
        logger.info("Starting components...")

        if isinstance(self.repository, RedisDescriptorRepository):
            await self.repository.connect()

        self.tasks.append(asyncio.create_task(self.synchronizer.start(), name="store_synchronizer"))
        logger.info("Store synchronizer started")

        self.tasks.append(asyncio.create_task(self.sampling_loop.start(), name="sampling_loop"))
        logger.info("Sampling loop started")

    async def start_stream_input(self, stream_url: str):
        """Connect to the stream and start decoding frames

        Raises:
            RuntimeError: If the connection is not active
        """
        logger.info(f"Starting stream input for: {stream_url}")

        connection = self.stream_reader.connect(stream_url)
        if not connection.is_active:
            raise RuntimeError(f"Failed to connect to stream: {stream_url}")

        self.tasks.append(asyncio.create_task(self.stream_reader.start_streaming(), name="stream_reader"))
        logger.info("Stream input started successfully")

    async def monitor_tasks(self):
        """Log failed tasks; end the run when the stream finishes"""
        reported = set()
        while not self.shutdown_event.is_set():
            for task in self.tasks:
                if not task.done() or task in reported:
                    continue
                reported.add(task)
                task_name = task.get_name()
                if task.cancelled():
                    logger.info(f"Task {task_name} was cancelled")
                elif task.exception():
                    logger.error(f"Task {task_name} failed with exception: {task.exception()}",
                                 exc_info=task.exception())
                else:
                    logger.info(f"Task {task_name} completed")

                if task_name == "stream_reader":
                    self.shutdown_event.set()

            await asyncio.sleep(1.0)

    async def shutdown(self):
        """Cancel all tasks and release resources"""
        logger.info("Shutting down FaceSenseService...")
        self.shutdown_event.set()

        for task in self.tasks:
            if not task.done():
                task.cancel()
        if self.tasks:
            await asyncio.gather(*self.tasks, return_exceptions=True)
        self.tasks = []

        self.stream_reader.disconnect()
        if isinstance(self.repository, RedisDescriptorRepository):
            await self.repository.close()

        logger.info("FaceSenseService shutdown complete")

    async def run(self, stream_url: str):
        """Run the pipeline until the stream ends or shutdown is requested"""
        try:
            logger.info("=" * 60)
            logger.info("Starting FaceSense")
            logger.info("=" * 60)

            await self.start_stream_input(stream_url)
            await self.start_components()

            monitor_task = asyncio.create_task(self.monitor_tasks())
            await self.shutdown_event.wait()
            monitor_task.cancel()

        except Exception as e:
            logger.error(f"Fatal error in main loop: {e}", exc_info=True)
        finally:
            await self.shutdown()


def setup_signal_handlers(service: FaceSenseService):
    """Request a graceful shutdown on SIGINT/SIGTERM"""
    loop = asyncio.get_running_loop()

    def signal_handler(signum):
        logger.info(f"Received signal {signum}")
        service.shutdown_event.set()

    for signum in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(signum, signal_handler, signum)
        except NotImplementedError:
            # Windows event loops have no signal handler support
            signal.signal(signum, lambda s, f: loop.call_soon_threadsafe(signal_handler, s))


async def main_async(argv=None):
    """Async main entry point"""
    argv = sys.argv[1:] if argv is None else argv
    if not argv:
        logger.error("No stream source provided")
        logger.info("Usage: python -m facesense.main <video_path | device | stream_url>")
        return 2

    config.validate()
    service = FaceSenseService()
    setup_signal_handlers(service)
    await service.run(argv[0])
    return 0


def main():
    """Main entry point"""
    setup_logging()
    try:
        sys.exit(asyncio.run(main_async()))
    except KeyboardInterrupt:
        logger.info("Application terminated by user")
    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
