"""
Face Detector
=============

Detector abstraction for the relay.

This module provides the FaceDetector protocol and MockFaceDetector
implementation. Real backends live in opencv_detector.py.

Design Rules:
    - load() is blocking and may be slow; callers run it off the event loop
    - detect() takes a decoded BGR image and returns Face models
    - Mock provides deterministic, stable output for testing
"""

import logging
from typing import List, Protocol

import numpy as np

from face_relay.models.detection import BoundingBox, Face, Landmark


logger = logging.getLogger(__name__)


class DetectorLoadError(Exception):
    """Raised when detector model weights cannot be loaded."""
    pass


class FaceDetector(Protocol):
    """
    Protocol for detection backends.

    All implementations must provide a blocking `load` step (model
    initialization) and a blocking `detect` method. DetectionService is
    responsible for calling load() once and moving both off the loop.
    """

    name: str

    def load(self) -> None:
        """
        Load model weights.

        Raises:
            DetectorLoadError: If the model cannot be loaded
        """
        ...

    def detect(self, image: np.ndarray) -> List[Face]:
        """
        Detect faces in a decoded image.

        Args:
            image: BGR image (H, W, 3), dtype=uint8

        Returns:
            Detected faces, possibly empty
        """
        ...


class MockFaceDetector:
    """
    Deterministic mock detector for testing.

    Returns `faces_per_frame` faces laid out in a row across the middle
    of the image, each with five landmarks. Output depends only on the
    image size, so results are reproducible.

    Attributes:
        faces_per_frame: Number of faces reported for every image
        load_calls: How many times load() ran
        detect_calls: How many times detect() ran
    """

    name = "mock"

    def __init__(self, faces_per_frame: int = 1) -> None:
        if faces_per_frame < 0:
            raise ValueError("faces_per_frame must be >= 0")

        self.faces_per_frame = faces_per_frame
        self.load_calls: int = 0
        self.detect_calls: int = 0

        logger.info(f"MockFaceDetector initialized: faces_per_frame={faces_per_frame}")

    def load(self) -> None:
        self.load_calls += 1

    def detect(self, image: np.ndarray) -> List[Face]:
        self.detect_calls += 1

        height, width = image.shape[:2]
        count = self.faces_per_frame
        if count == 0:
            return []

        slot = width / count
        side = min(slot, height) / 2
        faces = []
        for i in range(count):
            x = slot * i + (slot - side) / 2
            y = (height - side) / 2
            faces.append(
                Face(
                    box=BoundingBox(x=x, y=y, width=side, height=side),
                    score=0.99,
                    landmarks=[
                        Landmark(x=x + side * 0.3, y=y + side * 0.4),
                        Landmark(x=x + side * 0.7, y=y + side * 0.4),
                        Landmark(x=x + side * 0.5, y=y + side * 0.55),
                        Landmark(x=x + side * 0.35, y=y + side * 0.75),
                        Landmark(x=x + side * 0.65, y=y + side * 0.75),
                    ],
                )
            )
        return faces
