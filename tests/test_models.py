"""
Model Tests
===========

Client protocol parsing/serialization and detection outcomes.
"""

import pytest
from pydantic import ValidationError

from face_relay.models.detection import BoundingBox, DetectionOutcome, Face, Landmark, OutcomeStatus
from face_relay.models.messages import (
    ClientRequest,
    ErrorMessage,
    FacesDetectedMessage,
    InvalidClientMessage,
    StreamEndedMessage,
    parse_client_message,
    serialize_message,
)
from face_relay.models.state import SessionState


class TestClientRequest:
    """Tests for inbound message parsing."""

    def test_video_url(self):
        request = parse_client_message('{"videoUrl": "https://example.com/live.m3u8"}')

        assert request.video_url == "https://example.com/live.m3u8"
        assert not request.is_stop

    def test_bytes_payload(self):
        request = parse_client_message(b'{"videoUrl": "rtsp://cam/1"}')

        assert request.video_url == "rtsp://cam/1"

    def test_stop(self):
        assert parse_client_message('{"action": "stop"}').is_stop

    def test_populate_by_name(self):
        assert ClientRequest(video_url="file.mp4").video_url == "file.mp4"

    @pytest.mark.parametrize("raw", [
        "",
        "not json",
        "[]",
        "{}",
        '{"videoUrl": ""}',
        '{"videoUrl": 42}',
        '{"action": "start"}',
        '{"videoUrl": "file.mp4", "action": "stop"}',
    ])
    def test_invalid_messages(self, raw):
        with pytest.raises(InvalidClientMessage):
            parse_client_message(raw)


class TestOutboundMessages:
    """Tests for outbound serialization."""

    def test_faces_detected_wire_names(self):
        face = Face(
            box=BoundingBox(x=1, y=2, width=3, height=4),
            score=0.5,
            landmarks=[Landmark(x=1.5, y=2.5)],
        )

        text = serialize_message(FacesDetectedMessage(frame_number=9, faces=[face]))

        assert '"frameNumber":9' in text
        assert '"type":"faces_detected"' in text
        assert "frame_number" not in text

    def test_lifecycle_messages(self):
        assert serialize_message(StreamEndedMessage()) == '{"type":"stream_ended"}'
        assert serialize_message(ErrorMessage(message="x")) == '{"type":"error","message":"x"}'

    def test_negative_frame_number_rejected(self):
        with pytest.raises(ValidationError):
            FacesDetectedMessage(frame_number=-1)


class TestDetectionOutcome:
    """Tests for DetectionOutcome constructors."""

    def test_from_faces(self):
        face = Face(box=BoundingBox(x=0, y=0, width=1, height=1))

        assert DetectionOutcome.from_faces(0, 1, [face]).status is OutcomeStatus.DETECTED
        assert DetectionOutcome.from_faces(0, 1, []).status is OutcomeStatus.EMPTY

    def test_failed_is_not_ok(self):
        outcome = DetectionOutcome.failed(3, 1, "corrupt")

        assert not outcome.ok
        assert outcome.faces == ()
        assert outcome.error == "corrupt"

    def test_empty_with_error_is_ok(self):
        outcome = DetectionOutcome.empty(3, 1, error="boom")

        assert outcome.ok
        assert outcome.status is OutcomeStatus.EMPTY

    def test_box_dimensions_non_negative(self):
        with pytest.raises(ValidationError):
            BoundingBox(x=0, y=0, width=-1, height=1)


class TestSessionState:
    def test_values(self):
        assert {s.value for s in SessionState} == {"IDLE", "STREAMING", "CLOSED"}
