"""
Perception Module
=================

Face detection for the relay.

This module provides a black-box abstraction for detection.
The session pipeline consumes ONLY DetectionOutcome values.

Components:
    - FaceDetector: Protocol for detection backends
    - MockFaceDetector: Deterministic mock for testing
    - HaarFaceDetector, YuNetFaceDetector: OpenCV backends
    - DetectionService: Process-wide init-once wrapper
    - DetectionDispatcher: Frame -> DetectionOutcome
"""

from face_relay.perception.detector import (
    DetectorLoadError,
    FaceDetector,
    MockFaceDetector,
)
from face_relay.perception.opencv_detector import HaarFaceDetector, YuNetFaceDetector
from face_relay.perception.service import DetectionService, create_detector
from face_relay.perception.dispatcher import DetectionDispatcher

__all__ = [
    "FaceDetector",
    "DetectorLoadError",
    "MockFaceDetector",
    "HaarFaceDetector",
    "YuNetFaceDetector",
    "DetectionService",
    "create_detector",
    "DetectionDispatcher",
]
