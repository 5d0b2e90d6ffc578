#!/usr/bin/env python3
"""Simple demo of the face perception pipeline without a camera.

A synthetic frame and a scripted detector stand in for the video stream and the
face model, so the demo shows emotion smoothing, recognition and enrollment
with nothing but the package installed.
"""

import asyncio
import itertools

import numpy as np

from facesense.analysis.perception import ExecutorPerceptionEngine
from facesense.identity.repository import InMemoryDescriptorRepository
from facesense.input.frame_source import LatestFrameSource
from facesense.main import FaceSenseService
from facesense.models.features import BoundingBox, Detection
from facesense.models.frames import VideoFrame


EXPRESSIONS = itertools.cycle([
    {"neutral": 0.95, "happy": 0.05},
    {"neutral": 0.60, "happy": 0.38, "surprised": 0.02},
    {"neutral": 0.99, "sad": 0.005},
    {"angry": 0.40, "disgusted": 0.35, "neutral": 0.25},
])


def synthetic_detector(frame):
    """Two faces: one near the left edge, one in the middle of the frame"""
    center = Detection(
        box=BoundingBox(x=270, y=150, width=100, height=120),
        expressions=next(EXPRESSIONS),
        embedding=[0.9, 0.9, 0.9]
    )
    edge = Detection(
        box=BoundingBox(x=10, y=150, width=80, height=100),
        expressions={"fearful": 1.0},
        embedding=[5.0, 5.0, 5.0]
    )
    return [edge, center]


def synthetic_single_face(frame):
    return Detection(
        box=BoundingBox(x=270, y=150, width=100, height=120),
        expressions={"happy": 1.0},
        embedding=[1.0, 1.0, 1.0]
    )


async def demo_pipeline():
    """Demonstrate sampling, recognition and enrollment with synthetic data."""

    print("=" * 60)
    print("FaceSense Pipeline Demo")
    print("=" * 60)
    print()

    frame_source = LatestFrameSource()
    frame_source.publish(VideoFrame(
        image=np.random.randint(0, 255, (480, 640, 3), dtype=np.uint8),
        timestamp=0.0,
        frame_number=0
    ))

    repository = InMemoryDescriptorRepository({"bob": [[0.0, 0.0, 0.0]]})
    service = FaceSenseService(
        perception=ExecutorPerceptionEngine(synthetic_detector, synthetic_single_face),
        repository=repository,
        frame_source=frame_source
    )
    service.add_face_emotion_listener(lambda label: print(f"  → Face emotion: {label}"))
    service.add_recognition_listener(
        lambda label, distance: print(f"  → Identity: {label} (distance {distance:.4f})")
    )

    await service.synchronizer.refresh()
    print("✓ Matcher ready with identities:", service.synchronizer.current_matcher().labels)
    print()

    print("Sampling 4 ticks before enrollment...")
    print("-" * 60)
    for i in range(4):
        print(f"\nTick {i+1}/4:")
        await service.sampling_loop.tick()

    print()
    print("Enrolling the centered face as 'bob'...")
    result = await service.handle_user_message("msg-1", "내 이름은 bob이야")
    await asyncio.gather(*service.synchronizer._background)
    print(f"  ✓ Saved {result.saved_artifact_count} artifacts: {list(result.artifact_urls)}")

    print()
    print("Sampling 2 ticks after enrollment...")
    print("-" * 60)
    for i in range(2):
        print(f"\nTick {i+1}/2:")
        await service.sampling_loop.tick()

    print()
    print("Text classifier reply for one chat message...")
    label = service.handle_text_emotion("msg-2", "happy: 12.5%\nsad: 70%\nneutral: 17.5%")
    print(f"  → Text emotion: {label}")

    print()
    print("-" * 60)
    print("Summary:")
    print(f"  Face history: {list(service.extractor.face_history.snapshot())}")
    print(f"  Current emotion: {service.current_emotion()}")
    print(f"  Matcher rebuilds: {service.synchronizer.rebuild_count}")
    print("=" * 60)


if __name__ == "__main__":
    try:
        asyncio.run(demo_pipeline())
    except KeyboardInterrupt:
        print("\nDemo interrupted by user")
