"""
Detection Service
=================

Process-wide, init-once wrapper around the configured face detector.

All sessions share one DetectionService. The first caller of
ensure_ready() loads the model; concurrent first callers wait on the
same lock and the model is loaded exactly once.

Design Rules:
    - ensure_ready() is idempotent and safe under concurrent first use
    - Blocking detector work always runs in a worker thread
    - A failed load is retried by the next ensure_ready() call
"""

import asyncio
import logging
import time
from typing import List, Optional

import numpy as np

from face_relay.config import DetectionConfig
from face_relay.models.detection import Face
from face_relay.perception.detector import FaceDetector, MockFaceDetector
from face_relay.perception.opencv_detector import HaarFaceDetector, YuNetFaceDetector


logger = logging.getLogger(__name__)


def create_detector(config: DetectionConfig) -> FaceDetector:
    """
    Create a detector backend from config.

    Fails fast if the yunet backend is requested without a model path.
    """
    backend = config.backend

    if backend == "mock":
        logger.info("Using MockFaceDetector")
        return MockFaceDetector()

    elif backend == "haar":
        logger.info("Using HaarFaceDetector")
        return HaarFaceDetector(
            cascade_path=config.model_path,
            scale_factor=config.scale_factor,
            min_neighbors=config.min_neighbors,
            min_face_size=config.min_face_size,
        )

    elif backend == "yunet":
        if not config.model_path:
            raise ValueError(
                "YuNet backend requested but detection.model_path is not set. "
                "Download face_detection_yunet_2023mar.onnx from the OpenCV model zoo."
            )
        logger.info(
            f"Using YuNetFaceDetector: "
            f"score_threshold={config.score_threshold}, "
            f"nms_threshold={config.nms_threshold}"
        )
        return YuNetFaceDetector(
            model_path=config.model_path,
            score_threshold=config.score_threshold,
            nms_threshold=config.nms_threshold,
        )

    else:
        raise ValueError(f"Unknown detector backend: {backend}")


class DetectionService:
    """
    Shared, lazily initialized detection capability.

    Attributes:
        detector: Underlying backend
        ready: Whether the model has been loaded
        load_seconds: Wall time of the successful load, if any
    """

    def __init__(self, detector: FaceDetector) -> None:
        self.detector = detector
        self._ready: bool = False
        self._lock = asyncio.Lock()
        self.load_seconds: Optional[float] = None

    @property
    def ready(self) -> bool:
        return self._ready

    @property
    def backend(self) -> str:
        return getattr(self.detector, "name", type(self.detector).__name__)

    async def ensure_ready(self) -> None:
        """
        Load the model if it is not loaded yet.

        Raises:
            DetectorLoadError: If loading fails
        """
        if self._ready:
            return

        async with self._lock:
            if self._ready:
                return

            start = time.perf_counter()
            await asyncio.to_thread(self.detector.load)
            self.load_seconds = time.perf_counter() - start
            self._ready = True
            logger.info(f"Detector '{self.backend}' loaded in {self.load_seconds:.2f}s")

    async def detect(self, image: np.ndarray) -> List[Face]:
        """Detect faces in a decoded image, loading the model on first use."""
        await self.ensure_ready()
        return await asyncio.to_thread(self.detector.detect, image)
