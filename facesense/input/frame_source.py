"""Frame input: latest-frame holder and PyAV stream reader"""

import asyncio
import logging
import time
from pathlib import Path
from typing import Optional

import av

from facesense.models.frames import VideoFrame
from facesense.models.enums import StreamProtocol, StreamConnection
from facesense.models.interfaces import FrameSource
from facesense.config.config_loader import config


logger = logging.getLogger(__name__)


def detect_protocol(url: str) -> StreamProtocol:
    """Guess the stream protocol from a URL or path"""
    lowered = url.lower()
    if lowered.startswith("rtmp://"):
        return StreamProtocol.RTMP
    if lowered.startswith("rtsp://"):
        return StreamProtocol.RTSP
    if lowered.startswith(("http://", "https://")) or lowered.endswith(".m3u8"):
        return StreamProtocol.HLS
    if lowered.startswith("/dev/video") or lowered.isdigit():
        return StreamProtocol.DEVICE
    return StreamProtocol.FILE


class LatestFrameSource(FrameSource):
    """Holds the most recently published frame.

    Consumers always see the newest frame; older frames are dropped, which
    is what a fixed-cadence sampler wants.
    """

    def __init__(self):
        self._frame: Optional[VideoFrame] = None
        self.published_count = 0

    def publish(self, frame: VideoFrame):
        self._frame = frame
        self.published_count += 1

    def latest_frame(self) -> Optional[VideoFrame]:
        return self._frame

    def is_ready(self) -> bool:
        """True once a frame with non-zero extent is available"""
        return self._frame is not None and self._frame.has_extent

    def clear(self):
        self._frame = None


class StreamFrameReader:
    """Decodes a video stream with PyAV and publishes frames to a frame source

    Handles local files, camera devices, RTMP, RTSP and HLS sources. Only the
    first video stream is decoded; audio is ignored.
    """

    def __init__(
        self,
        frame_source: LatestFrameSource,
        realtime: Optional[bool] = None,
        device_format: Optional[str] = None
    ):
        self.frame_source = frame_source
        self.realtime = realtime if realtime is not None else config.get('stream.realtime', True)
        self.device_format = device_format or config.get('stream.device_format', 'v4l2')

        self.connection: Optional[StreamConnection] = None
        self.container = None
        self.video_stream = None
        self.start_time: float = 0.0
        self.frame_count: int = 0
        self.is_streaming: bool = False

    def connect(self, stream_url: str, protocol: Optional[StreamProtocol] = None) -> StreamConnection:
        """Open a stream source

        Args:
            stream_url: URL, device path or file path of the stream
            protocol: Streaming protocol, guessed from the URL when omitted

        Returns:
            StreamConnection with connection details

        Raises:
            FileNotFoundError: If a local file doesn't exist
            ConnectionError: If the stream cannot be opened or has no video
        """
        protocol = protocol or detect_protocol(stream_url)
        logger.info(f"Connecting to stream: {stream_url} (protocol: {protocol.value})")

        if protocol == StreamProtocol.FILE and not Path(stream_url).exists():
            raise FileNotFoundError(f"Video file not found: {stream_url}")

        try:
            if protocol == StreamProtocol.DEVICE:
                self.container = av.open(stream_url, format=self.device_format)
            else:
                self.container = av.open(stream_url)

            self.video_stream = next(
                (stream for stream in self.container.streams if stream.type == 'video'),
                None
            )
            if self.video_stream is None:
                raise ValueError("no video stream found")

            video_codec = self.video_stream.codec_context.name
            resolution = (self.video_stream.width, self.video_stream.height)
            logger.info(f"Stream opened - Video codec: {video_codec}, resolution: {resolution[0]}x{resolution[1]}")

            self.connection = StreamConnection(
                url=stream_url,
                protocol=protocol,
                is_active=True,
                video_codec=video_codec,
                resolution=resolution
            )
            return self.connection

        except Exception as e:
            logger.error(f"Failed to connect to stream: {e}")
            self._close_container()
            raise ConnectionError(f"Stream connection failed: {e}")

    async def start_streaming(self) -> None:
        """Decode video frames and publish them until the stream ends or is stopped

        Raises:
            RuntimeError: If connect() has not succeeded
        """
        if not self.connection or not self.connection.is_active:
            raise RuntimeError("No active stream connection")

        logger.info("Starting stream processing...")
        self.start_time = time.time()
        self.frame_count = 0
        self.is_streaming = True
        pace = self.realtime and self.connection.protocol == StreamProtocol.FILE

        try:
            for packet in self.container.demux(self.video_stream):
                if not self.is_streaming:
                    break
                for av_frame in packet.decode():
                    self._publish(av_frame)
                    if pace and av_frame.time is not None:
                        delay = av_frame.time - (time.time() - self.start_time)
                        if delay > 0:
                            await asyncio.sleep(delay)
                # Yield to the sampling loop between packets
                await asyncio.sleep(0)

        except asyncio.CancelledError:
            logger.info("Stream reader task cancelled")
            raise
        except Exception as e:
            logger.error(f"Error during streaming: {e}", exc_info=True)
            raise

        finally:
            logger.info(f"Stream processing stopped after {self.frame_count} frames")
            self.is_streaming = False

    def _publish(self, av_frame) -> None:
        try:
            rgb_frame = av_frame.to_ndarray(format='rgb24')
            frame = VideoFrame(
                image=rgb_frame,
                timestamp=time.time() - self.start_time,
                frame_number=self.frame_count,
                codec=self.connection.video_codec if self.connection else "unknown"
            )
            self.frame_count += 1
            self.frame_source.publish(frame)
        except Exception as e:
            logger.warning(f"Failed to process video frame: {e}")

    def is_active(self) -> bool:
        return self.is_streaming and self.connection is not None and self.connection.is_active

    def _close_container(self):
        if self.container is not None:
            try:
                self.container.close()
            except Exception as e:
                logger.warning(f"Error closing container: {e}")
            self.container = None

    def disconnect(self) -> None:
        """Stop streaming and release the stream source"""
        logger.info("Disconnecting from stream...")
        self.is_streaming = False
        self._close_container()
        if self.connection:
            self.connection.is_active = False
        logger.info("Disconnected from stream")
