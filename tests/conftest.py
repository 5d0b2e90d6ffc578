"""Pytest configuration and fixtures"""

from typing import List, Optional

import numpy as np
import pytest
from hypothesis import settings, Verbosity

from facesense.models.features import BoundingBox, Detection
from facesense.models.frames import VideoFrame
from facesense.models.interfaces import PerceptionEngine
from facesense.identity.repository import InMemoryDescriptorRepository
from facesense.input.frame_source import LatestFrameSource

# Register Hypothesis profiles
settings.register_profile("ci", max_examples=100, verbosity=Verbosity.verbose)
settings.register_profile("dev", max_examples=20, verbosity=Verbosity.normal)
settings.register_profile("debug", max_examples=10, verbosity=Verbosity.verbose)

# Use CI profile by default
settings.load_profile("ci")


class FakePerceptionEngine(PerceptionEngine):
    """Scripted perception engine.

    ``faces`` is returned by every detect_faces call (an exception instance is
    raised instead). ``single`` is consumed one item per detect_single_face
    call, the last item repeating; exception instances are raised.
    """

    def __init__(self, faces=None, single=None):
        self.faces = faces if faces is not None else []
        self.single: List = list(single) if single is not None else []
        self.detect_faces_calls = 0
        self.detect_single_calls = 0

    async def detect_faces(self, frame: VideoFrame) -> List[Detection]:
        self.detect_faces_calls += 1
        if isinstance(self.faces, Exception):
            raise self.faces
        return list(self.faces)

    async def detect_single_face(self, frame: VideoFrame) -> Optional[Detection]:
        self.detect_single_calls += 1
        if not self.single:
            return None
        item = self.single.pop(0) if len(self.single) > 1 else self.single[0]
        if isinstance(item, Exception):
            raise item
        return item


def build_frame(width: int = 640, height: int = 480, frame_number: int = 0) -> VideoFrame:
    return VideoFrame(
        image=np.zeros((height, width, 3), dtype=np.uint8),
        timestamp=0.0,
        frame_number=frame_number
    )


def build_detection(x=270.0, y=190.0, width=100.0, height=100.0, expressions=None, embedding=None) -> Detection:
    return Detection(
        box=BoundingBox(x=x, y=y, width=width, height=height),
        expressions=expressions if expressions is not None else {"happy": 0.9, "neutral": 0.1},
        embedding=embedding
    )


@pytest.fixture
def fake_engine_cls():
    return FakePerceptionEngine


@pytest.fixture
def make_frame():
    return build_frame


@pytest.fixture
def make_detection():
    return build_detection


@pytest.fixture
def frame_source():
    source = LatestFrameSource()
    source.publish(build_frame())
    return source


@pytest.fixture
def memory_repository():
    return InMemoryDescriptorRepository()
