"""
Detection Dispatcher
====================

Turns one admitted frame into a DetectionOutcome.

Design Rules:
    - Never raises: decode failures become FAILED outcomes, detector
      failures become EMPTY outcomes carrying the error text
    - Does not touch session state; the throttle is owned by the caller
"""

import asyncio
import logging
from typing import Callable

import numpy as np

from face_relay.models.detection import DetectionOutcome
from face_relay.perception.service import DetectionService
from face_relay.stream.frame import Frame
from face_relay.stream.image_decoder import ImageDecodeError, decode_jpeg


logger = logging.getLogger(__name__)


class DetectionDispatcher:
    """
    Decode + detect for a single frame.

    Attributes:
        service: Shared detection service
        decode: Blocking JPEG decoder (run in a worker thread)
        decode_errors: Frames that failed to decode
        detect_errors: Frames whose detection raised
    """

    def __init__(
        self,
        service: DetectionService,
        decode: Callable[[bytes], np.ndarray] = decode_jpeg,
    ) -> None:
        self.service = service
        self.decode = decode
        self.decode_errors: int = 0
        self.detect_errors: int = 0

    async def dispatch(self, frame: Frame) -> DetectionOutcome:
        """
        Decode the frame and run detection.

        Args:
            frame: Frame admitted by the throttle

        Returns:
            DetectionOutcome tagged with the frame's sequence and generation
        """
        try:
            image = await asyncio.to_thread(self.decode, frame.data)
        except ImageDecodeError as e:
            self.decode_errors += 1
            logger.warning(f"Decode error (frame={frame.sequence}): {e}")
            return DetectionOutcome.failed(frame.sequence, frame.generation, str(e))
        except Exception as e:
            self.decode_errors += 1
            logger.error(f"Unexpected decode error (frame={frame.sequence}): {e}", exc_info=True)
            return DetectionOutcome.failed(frame.sequence, frame.generation, str(e))

        try:
            faces = await self.service.detect(image)
        except Exception as e:
            self.detect_errors += 1
            logger.error(f"Face detection error (frame={frame.sequence}): {e}")
            return DetectionOutcome.empty(frame.sequence, frame.generation, error=str(e))

        logger.debug(f"Detected faces (frame={frame.sequence}): {len(faces)}")
        return DetectionOutcome.from_faces(frame.sequence, frame.generation, faces)
