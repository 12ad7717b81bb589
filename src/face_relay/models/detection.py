"""
Detection Models
================

Face geometry and per-frame detection outcomes.

Face geometry is a pydantic model because it is serialized straight into
client messages. The outcome is a plain frozen dataclass: it only travels
between the dispatcher and the session controller.

Outcome Contract:
    DETECTED -> faces is non-empty
    EMPTY    -> faces is empty (no faces, or detector failed internally)
    FAILED   -> frame could not be decoded, faces is empty
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Tuple

from pydantic import BaseModel, Field


class BoundingBox(BaseModel):
    """Axis-aligned face box in source image pixels."""

    x: float = Field(..., description="Left edge (pixels)")
    y: float = Field(..., description="Top edge (pixels)")
    width: float = Field(..., ge=0.0, description="Box width (pixels)")
    height: float = Field(..., ge=0.0, description="Box height (pixels)")


class Landmark(BaseModel):
    """Single facial landmark point."""

    x: float
    y: float


class Face(BaseModel):
    """
    One detected face.

    Attributes:
        box: Bounding box in image coordinates
        score: Detector confidence in [0, 1] (1.0 when the backend has none)
        landmarks: Facial landmark points, empty when the backend has none
    """

    box: BoundingBox = Field(..., description="Face bounding box")
    score: float = Field(default=1.0, ge=0.0, le=1.0, description="Detection confidence")
    landmarks: List[Landmark] = Field(default_factory=list, description="Landmark points")


class OutcomeStatus(str, Enum):
    """
    Result kind for one dispatched frame.

    Attributes:
        DETECTED: At least one face found
        EMPTY: No faces (including detector-internal failure)
        FAILED: Frame could not be decoded
    """

    DETECTED = "DETECTED"
    EMPTY = "EMPTY"
    FAILED = "FAILED"


@dataclass(frozen=True, slots=True)
class DetectionOutcome:
    """
    Result of dispatching one frame.

    Attributes:
        sequence: Frame sequence number within its generation
        generation: Decoder generation the frame came from
        status: Outcome kind
        faces: Detected faces (empty unless DETECTED)
        error: Failure description for FAILED, or a swallowed detector error
    """

    sequence: int
    generation: int
    status: OutcomeStatus
    faces: Tuple[Face, ...] = field(default_factory=tuple)
    error: Optional[str] = None

    @classmethod
    def from_faces(cls, sequence: int, generation: int, faces: List[Face]) -> "DetectionOutcome":
        status = OutcomeStatus.DETECTED if faces else OutcomeStatus.EMPTY
        return cls(sequence=sequence, generation=generation, status=status, faces=tuple(faces))

    @classmethod
    def empty(cls, sequence: int, generation: int, error: Optional[str] = None) -> "DetectionOutcome":
        return cls(sequence=sequence, generation=generation, status=OutcomeStatus.EMPTY, error=error)

    @classmethod
    def failed(cls, sequence: int, generation: int, error: str) -> "DetectionOutcome":
        return cls(sequence=sequence, generation=generation, status=OutcomeStatus.FAILED, error=error)

    @property
    def ok(self) -> bool:
        """Whether the frame was decoded and passed to the detector."""
        return self.status is not OutcomeStatus.FAILED

    def __repr__(self) -> str:
        return (
            f"DetectionOutcome(sequence={self.sequence}, "
            f"generation={self.generation}, "
            f"status={self.status.value}, faces={len(self.faces)})"
        )
