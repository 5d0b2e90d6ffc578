"""Enumerations for emotion labels, stream protocols and component states"""

from enum import Enum


class Emotion(Enum):
    """Facial expression categories reported by the perception engine"""
    NEUTRAL = "neutral"
    HAPPY = "happy"
    SAD = "sad"
    ANGRY = "angry"
    FEARFUL = "fearful"
    DISGUSTED = "disgusted"
    SURPRISED = "surprised"


# Label strings in canonical order
EMOTION_LABELS = tuple(e.value for e in Emotion)


class StreamProtocol(Enum):
    """Supported streaming protocols"""
    RTMP = "rtmp"
    RTSP = "rtsp"
    HLS = "hls"
    DEVICE = "device"  # Local camera, e.g. /dev/video0
    FILE = "file"  # Local file input


class StreamConnection:
    """Stream connection information

    Attributes:
        url: Stream URL, device path or file path
        protocol: Streaming protocol
        is_active: Whether connection is currently active
        video_codec: Video codec name (e.g., "h264", "mjpeg")
        resolution: Tuple of (width, height)
    """

    def __init__(
        self,
        url: str,
        protocol: StreamProtocol,
        is_active: bool = False,
        video_codec: str = "",
        resolution: tuple = (0, 0)
    ):
        self.url = url
        self.protocol = protocol
        self.is_active = is_active
        self.video_codec = video_codec
        self.resolution = resolution

    def __repr__(self) -> str:
        return (
            f"StreamConnection(url='{self.url}', protocol={self.protocol.value}, "
            f"is_active={self.is_active}, video_codec='{self.video_codec}', "
            f"resolution={self.resolution[0]}x{self.resolution[1]})"
        )


class RefreshState(Enum):
    """Store synchronizer refresh state"""
    IDLE = "idle"
    REFRESHING = "refreshing"


class FetchStatus(Enum):
    """Outcome of a descriptor store fetch"""
    FOUND = "found"
    NOT_FOUND = "not_found"
    ERROR = "error"


class EnrollmentStatus(Enum):
    """Outcome of one enrollment request"""
    COMPLETED = "completed"
    FRAME_UNAVAILABLE = "frame_unavailable"
    NO_FACE = "no_face"
