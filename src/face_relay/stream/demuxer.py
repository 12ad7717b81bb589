"""
Frame Demuxer
=============

Incremental extraction of JPEG frames from an MJPEG byte stream.

The decoder writes back-to-back JPEG images to its stdout with no
framing of its own. Each image starts with the SOI marker (FF D8) and
ends with the EOI marker (FF D9). Reads from the pipe return arbitrary
slices of that stream, so a frame can span any number of chunks.

Design Rules:
    - Frames are returned in arrival order and never overlap
    - Bytes after the last complete frame stay buffered for the next chunk
    - Garbage input never raises; it is skipped or buffered
"""

import logging
from typing import Final, List, Tuple


logger = logging.getLogger(__name__)


JPEG_START_MARKER: Final[bytes] = b"\xff\xd8"
JPEG_END_MARKER: Final[bytes] = b"\xff\xd9"


def _scan(buffer: bytearray) -> Tuple[List[bytes], int]:
    """
    Find every complete frame in the buffer.

    Returns:
        Tuple of (frames, consumed) where consumed is the offset just past
        the last extracted end marker (0 if no frame was found).
    """
    frames: List[bytes] = []
    consumed = 0

    while True:
        start = buffer.find(JPEG_START_MARKER, consumed)
        if start == -1:
            break
        end = buffer.find(JPEG_END_MARKER, start + len(JPEG_START_MARKER))
        if end == -1:
            break
        end += len(JPEG_END_MARKER)
        frames.append(bytes(buffer[start:end]))
        consumed = end

    return frames, consumed


def extract(accumulator: bytes, chunk: bytes) -> Tuple[List[bytes], bytes]:
    """
    Functional form of a single demux pass.

    Args:
        accumulator: Bytes left over from previous passes
        chunk: Newly arrived bytes

    Returns:
        Tuple of (frames, remaining accumulator)
    """
    buffer = bytearray(accumulator)
    buffer += chunk
    frames, consumed = _scan(buffer)
    return frames, bytes(buffer[consumed:])


class FrameDemuxer:
    """
    Stateful JPEG demuxer over a chunked byte stream.

    Owns its accumulator exclusively; one instance per decoder process.

    Attributes:
        max_buffer_bytes: Cap on buffered bytes when no frame completes
            (0 disables the cap)
        frames_extracted: Total frames returned so far
        discarded_bytes: Bytes dropped by the buffer cap

    Example:
        demuxer = FrameDemuxer()

        while chunk := await stdout.read(65536):
            for jpeg in demuxer.feed(chunk):
                handle(jpeg)
    """

    def __init__(self, max_buffer_bytes: int = 0) -> None:
        if max_buffer_bytes < 0:
            raise ValueError("max_buffer_bytes must be >= 0")

        self.max_buffer_bytes = max_buffer_bytes
        self._buffer = bytearray()
        self.frames_extracted: int = 0
        self.discarded_bytes: int = 0

    @property
    def buffered(self) -> int:
        """Number of bytes waiting for a complete frame."""
        return len(self._buffer)

    def feed(self, chunk: bytes) -> List[bytes]:
        """
        Append a chunk and return every frame it completes.

        Args:
            chunk: Raw bytes read from the decoder

        Returns:
            Complete JPEG images, in stream order (possibly empty)
        """
        if chunk:
            self._buffer += chunk

        frames, consumed = _scan(self._buffer)
        if consumed:
            del self._buffer[:consumed]
        elif self.max_buffer_bytes and len(self._buffer) > self.max_buffer_bytes:
            self._trim()

        self.frames_extracted += len(frames)
        return frames

    def reset(self) -> int:
        """
        Drop all buffered bytes.

        Returns:
            Number of bytes dropped.
        """
        dropped = len(self._buffer)
        self._buffer.clear()
        return dropped

    def _trim(self) -> None:
        # Keep only the newest partial frame, if any.
        last_start = self._buffer.rfind(JPEG_START_MARKER)
        if last_start > 0:
            dropped = last_start
            del self._buffer[:last_start]
        else:
            dropped = len(self._buffer)
            self._buffer.clear()

        self.discarded_bytes += dropped
        logger.warning(
            f"Demux buffer exceeded {self.max_buffer_bytes} bytes without a "
            f"complete frame, discarded {dropped} bytes"
        )
