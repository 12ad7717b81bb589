"""
Client Message Schemas
======================

Pydantic models for the client WebSocket protocol.

Inbound Contract:
    {"videoUrl": "https://example.com/live.m3u8"}   start or replace a stream
    {"action": "stop"}                               stop the current stream

Outbound Contract:
    {"type": "faces_detected", "frameNumber": 12, "faces": [...]}
    {"type": "error", "message": "Video processing error occurred"}
    {"type": "stream_ended"}

Example:
    from face_relay.models.messages import parse_client_message

    request = parse_client_message('{"videoUrl": "rtsp://camera/1"}')
    print(request.video_url)
"""

from typing import List, Literal, Optional, Union

from pydantic import BaseModel, Field, ValidationError, model_validator

from face_relay.models.detection import Face


# Client-facing error texts
PROCESSING_ERROR_MESSAGE = "Video processing error occurred"
REQUEST_ERROR_MESSAGE = "Failed to process video stream"


class InvalidClientMessage(ValueError):
    """Raised when an inbound message cannot be parsed or validated."""
    pass


class ClientRequest(BaseModel):
    """
    Inbound client request.

    Exactly one of `videoUrl` or `action` must be provided.

    Attributes:
        video_url: Source URL for the decoder (any URL ffmpeg accepts)
        action: Control action; only "stop" is defined
    """

    video_url: Optional[str] = Field(
        default=None,
        alias="videoUrl",
        min_length=1,
        description="Stream URL to decode",
    )

    action: Optional[Literal["stop"]] = Field(
        default=None,
        description="Control action",
    )

    @model_validator(mode="after")
    def _exactly_one(self) -> "ClientRequest":
        if (self.video_url is None) == (self.action is None):
            raise ValueError("expected exactly one of 'videoUrl' or 'action'")
        return self

    @property
    def is_stop(self) -> bool:
        return self.action == "stop"

    class Config:
        """Pydantic model configuration."""

        populate_by_name = True
        json_schema_extra = {
            "example": {"videoUrl": "https://example.com/live/index.m3u8"}
        }


class FacesDetectedMessage(BaseModel):
    """Per-frame detection result sent to the client."""

    type: Literal["faces_detected"] = "faces_detected"
    frame_number: int = Field(..., ge=0, alias="frameNumber")
    faces: List[Face] = Field(default_factory=list)

    class Config:
        """Pydantic model configuration."""

        populate_by_name = True


class ErrorMessage(BaseModel):
    """Lifecycle notification for a processing or request failure."""

    type: Literal["error"] = "error"
    message: str


class StreamEndedMessage(BaseModel):
    """Lifecycle notification that the decoder exited."""

    type: Literal["stream_ended"] = "stream_ended"


OutboundMessage = Union[FacesDetectedMessage, ErrorMessage, StreamEndedMessage]


def parse_client_message(raw: Union[str, bytes]) -> ClientRequest:
    """
    Parse and validate a raw inbound WebSocket message.

    Args:
        raw: Text or binary frame payload (JSON)

    Returns:
        Validated ClientRequest

    Raises:
        InvalidClientMessage: If the payload is not valid JSON or
            does not match the request schema
    """
    try:
        return ClientRequest.model_validate_json(raw)
    except ValidationError as e:
        raise InvalidClientMessage(str(e)) from e


def serialize_message(message: OutboundMessage) -> str:
    """Serialize an outbound message using the wire field names."""
    return message.model_dump_json(by_alias=True)
