"""
Image Decoder
=============

Dedicated module for decoding JPEG frames into OpenCV matrices.

Design Rules:
    - This is the ONLY place in the codebase that decodes images
    - Validates shape and dtype
    - Fails fast on corrupt frames
"""

import logging

import cv2
import numpy as np


logger = logging.getLogger(__name__)


class ImageDecodeError(Exception):
    """Raised when image decoding fails."""
    pass


def decode_jpeg(data: bytes) -> np.ndarray:
    """
    Decode JPEG bytes to a BGR numpy array.

    Args:
        data: Complete JPEG image bytes

    Returns:
        BGR image as np.ndarray (H, W, 3), dtype=uint8

    Raises:
        ImageDecodeError: If decoding fails or image is invalid
    """
    if not data:
        raise ImageDecodeError("Empty frame")

    try:
        nparr = np.frombuffer(data, np.uint8)
        bgr = cv2.imdecode(nparr, cv2.IMREAD_COLOR)
    except cv2.error as e:
        raise ImageDecodeError(f"cv2.imdecode failed: {e}") from e

    if bgr is None:
        raise ImageDecodeError(
            f"Failed to decode {len(data)} byte frame: cv2.imdecode returned None"
        )

    if len(bgr.shape) != 3 or bgr.shape[2] != 3:
        raise ImageDecodeError(f"Invalid image shape: {bgr.shape}")

    if bgr.dtype != np.uint8:
        raise ImageDecodeError(f"Invalid dtype: {bgr.dtype}")

    return bgr
