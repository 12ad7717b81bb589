"""
OpenCV Face Detectors
=====================

Production detection backends built on OpenCV.

Backends:
    - HaarFaceDetector: Viola-Jones cascade shipped with opencv-python.
      No download needed; boxes only.
    - YuNetFaceDetector: cv2.FaceDetectorYN with a YuNet ONNX model.
      Boxes, scores and five landmarks (eyes, nose tip, mouth corners).

Design Rules:
    - Model loading happens in load(), never in __init__
    - detect() is serialized per instance with a threading lock, since
      OpenCV detector objects are not safe to share between threads
"""

import logging
import threading
from pathlib import Path
from typing import List, Optional

import cv2
import numpy as np

from face_relay.models.detection import BoundingBox, Face, Landmark
from face_relay.perception.detector import DetectorLoadError


logger = logging.getLogger(__name__)


DEFAULT_HAAR_CASCADE = "haarcascade_frontalface_default.xml"


class HaarFaceDetector:
    """
    Haar cascade face detector.

    Attributes:
        cascade_path: Cascade XML (defaults to the bundled frontal face model)
        scale_factor: Image pyramid scale step
        min_neighbors: Candidate rectangles required to keep a detection
        min_face_size: Smallest face side in pixels
    """

    name = "haar"

    def __init__(
        self,
        cascade_path: Optional[str] = None,
        scale_factor: float = 1.1,
        min_neighbors: int = 5,
        min_face_size: int = 30,
    ) -> None:
        self.cascade_path = cascade_path or str(Path(cv2.data.haarcascades) / DEFAULT_HAAR_CASCADE)
        self.scale_factor = scale_factor
        self.min_neighbors = min_neighbors
        self.min_face_size = min_face_size

        self._cascade: Optional[cv2.CascadeClassifier] = None
        self._lock = threading.Lock()

    def load(self) -> None:
        if not Path(self.cascade_path).exists():
            raise DetectorLoadError(f"Cascade file not found: {self.cascade_path}")

        cascade = cv2.CascadeClassifier(self.cascade_path)
        if cascade.empty():
            raise DetectorLoadError(f"Failed to load cascade: {self.cascade_path}")

        self._cascade = cascade
        logger.info(f"Haar cascade loaded from: {self.cascade_path}")

    def detect(self, image: np.ndarray) -> List[Face]:
        if self._cascade is None:
            raise DetectorLoadError("HaarFaceDetector.detect() called before load()")

        gray = cv2.cvtColor(image, cv2.COLOR_BGR2GRAY)
        with self._lock:
            rects = self._cascade.detectMultiScale(
                gray,
                scaleFactor=self.scale_factor,
                minNeighbors=self.min_neighbors,
                minSize=(self.min_face_size, self.min_face_size),
            )

        return [
            Face(box=BoundingBox(x=float(x), y=float(y), width=float(w), height=float(h)))
            for (x, y, w, h) in rects
        ]


class YuNetFaceDetector:
    """
    YuNet face detector via cv2.FaceDetectorYN.

    Each detection row is [x, y, w, h, 5 x (lx, ly), score].

    Attributes:
        model_path: Path to the YuNet ONNX model
        score_threshold: Minimum detection score
        nms_threshold: Non-maximum suppression IoU threshold
        top_k: Candidates kept before NMS
    """

    name = "yunet"

    def __init__(
        self,
        model_path: str,
        score_threshold: float = 0.6,
        nms_threshold: float = 0.3,
        top_k: int = 5000,
    ) -> None:
        self.model_path = model_path
        self.score_threshold = score_threshold
        self.nms_threshold = nms_threshold
        self.top_k = top_k

        self._detector = None
        self._input_size: Optional[tuple] = None
        self._lock = threading.Lock()

    def load(self) -> None:
        if not Path(self.model_path).exists():
            raise DetectorLoadError(f"YuNet model not found: {self.model_path}")

        try:
            self._detector = cv2.FaceDetectorYN.create(
                self.model_path,
                "",
                (320, 320),
                self.score_threshold,
                self.nms_threshold,
                self.top_k,
            )
        except cv2.error as e:
            raise DetectorLoadError(f"Failed to load YuNet model: {e}") from e

        logger.info(f"YuNet model loaded from: {self.model_path}")

    def detect(self, image: np.ndarray) -> List[Face]:
        if self._detector is None:
            raise DetectorLoadError("YuNetFaceDetector.detect() called before load()")

        height, width = image.shape[:2]
        with self._lock:
            if self._input_size != (width, height):
                self._detector.setInputSize((width, height))
                self._input_size = (width, height)
            _, rows = self._detector.detect(image)

        if rows is None:
            return []

        faces = []
        for row in rows:
            x, y, w, h = (float(v) for v in row[:4])
            points = row[4:14].reshape(5, 2)
            faces.append(
                Face(
                    box=BoundingBox(x=x, y=y, width=max(0.0, w), height=max(0.0, h)),
                    score=min(1.0, max(0.0, float(row[14]))),
                    landmarks=[Landmark(x=float(px), y=float(py)) for px, py in points],
                )
            )
        return faces
