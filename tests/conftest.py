"""
Test Configuration
==================

Pytest fixtures and test configuration for face-stream-relay.
"""

import os

# Must be set before face_relay.config is imported
os.environ.setdefault("FACE_RELAY_DETECTOR_BACKEND", "mock")
os.environ.setdefault("FACE_RELAY_MAX_CONCURRENT", "1")

import cv2
import numpy as np
import pytest


def make_frame(payload: bytes) -> bytes:
    """Wrap a payload in JPEG start/end markers."""
    return b"\xff\xd8" + payload + b"\xff\xd9"


@pytest.fixture
def jpeg_bytes() -> bytes:
    """A real, decodable 64x48 JPEG."""
    image = np.full((48, 64, 3), 128, dtype=np.uint8)
    cv2.rectangle(image, (16, 8), (48, 40), (255, 255, 255), -1)
    ok, buf = cv2.imencode(".jpg", image)
    assert ok
    return buf.tobytes()


@pytest.fixture
def synthetic_frames():
    """Five marker-delimited frames with distinct payloads."""
    return [make_frame(bytes([0x10 + i]) * (i + 3)) for i in range(5)]
