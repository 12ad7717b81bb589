"""
Data Models
===========

Models for the face stream relay.

Models:
    Detection:
        - BoundingBox, Landmark, Face: Face geometry
        - OutcomeStatus, DetectionOutcome: Per-frame dispatch result

    Messages:
        - ClientRequest: Inbound stream request / stop
        - FacesDetectedMessage, ErrorMessage, StreamEndedMessage: Outbound

    State:
        - SessionState: Session lifecycle (IDLE, STREAMING, CLOSED)
"""

from face_relay.models.detection import (
    BoundingBox,
    DetectionOutcome,
    Face,
    Landmark,
    OutcomeStatus,
)
from face_relay.models.messages import (
    ClientRequest,
    ErrorMessage,
    FacesDetectedMessage,
    InvalidClientMessage,
    OutboundMessage,
    StreamEndedMessage,
    parse_client_message,
    serialize_message,
)
from face_relay.models.state import SessionState

__all__ = [
    # Detection
    "BoundingBox",
    "Landmark",
    "Face",
    "OutcomeStatus",
    "DetectionOutcome",
    # Messages
    "ClientRequest",
    "InvalidClientMessage",
    "FacesDetectedMessage",
    "ErrorMessage",
    "StreamEndedMessage",
    "OutboundMessage",
    "parse_client_message",
    "serialize_message",
    # State
    "SessionState",
]
