"""
Frame Data Model
=================

Internal frame representation for the relay pipeline.

Design Rules:
    - Produced only by the demuxer, consumed only by the dispatcher
    - Carries the raw JPEG bytes, never a decoded image
    - Tagged with the decoder generation it came from
"""

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class Frame:
    """
    One JPEG image extracted from decoder output.

    It is immutable (frozen) to prevent accidental modification.

    Attributes:
        sequence: Extraction order within the generation, starting at 0
        generation: Decoder instance this frame came from
        data: Complete JPEG bytes, SOI through EOI markers inclusive
    """

    sequence: int
    generation: int
    data: bytes

    def __repr__(self) -> str:
        """Compact repr that doesn't dump the full image."""
        return (
            f"Frame(sequence={self.sequence}, "
            f"generation={self.generation}, "
            f"size={len(self.data)})"
        )
