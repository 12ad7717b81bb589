"""
Application Tests
=================

HTTP probes, the WebSocket session endpoint and the HLS proxy, driven
through FastAPI's TestClient.
"""

import time

import httpx
import pytest
from fastapi.testclient import TestClient

import face_relay.main as main
from face_relay.config import settings
from face_relay.perception import DetectionService, MockFaceDetector
from face_relay.proxy import HLSProxy
from face_relay.stream.decoder import DecoderProcess

from fakes import FakeProcess


class BrokenCascadeDetector(MockFaceDetector):
    """Fails to load with an error that is not a DetectorLoadError."""

    name = "broken"

    def load(self):
        raise RuntimeError("cascade XML is malformed")


@pytest.fixture
def client():
    with TestClient(main.app) as test_client:
        yield test_client


def wait_until_ready(client, attempts: int = 100):
    for _ in range(attempts):
        response = client.get("/ready")
        if response.status_code == 200:
            return response
        time.sleep(0.01)
    return response


class TestHttpEndpoints:
    """Tests for probes and service info."""

    def test_root(self, client):
        data = client.get("/").json()

        assert data["service"] == "face-stream-relay"
        assert data["websocket_path"] == settings.server.websocket_path
        assert data["detector_backend"] == "mock"

    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_ready_after_warmup(self, client):
        response = wait_until_ready(client)

        assert response.status_code == 200
        assert response.json()["detector_backend"] == "mock"

    def test_metrics(self, client):
        data = client.get("/metrics").json()

        assert data["active_sessions"] == 0
        assert "closed_sessions" in data
        assert "detector_ready" in data


class TestWebSocketSession:
    """Tests for the client WebSocket protocol."""

    def test_malformed_message_returns_error(self, client):
        with client.websocket_connect(settings.server.websocket_path) as ws:
            ws.send_text("this is not json")

            assert ws.receive_json() == {
                "type": "error",
                "message": "Failed to process video stream",
            }

    def test_stream_produces_detections_then_end(self, monkeypatch, jpeg_bytes):
        urls = []

        async def fake_spawn(url, generation):
            urls.append(url)
            process = FakeProcess()
            process.feed(jpeg_bytes * 3)
            process.finish(0)
            return DecoderProcess(process, url, generation)

        monkeypatch.setattr(main, "spawn_decoder", fake_spawn)

        with TestClient(main.app) as client:
            with client.websocket_connect(settings.server.websocket_path) as ws:
                ws.send_json({"videoUrl": "https://example.com/live.m3u8"})

                messages = [ws.receive_json() for _ in range(4)]

        assert urls == ["https://example.com/live.m3u8"]
        assert [m["type"] for m in messages] == ["faces_detected"] * 3 + ["stream_ended"]
        assert [m["frameNumber"] for m in messages[:3]] == [0, 1, 2]
        assert len(messages[0]["faces"][0]["landmarks"]) == 5

    def test_spawn_failure_returns_processing_error(self, monkeypatch):
        monkeypatch.setattr(settings.decoder, "binary", "/nonexistent/ffmpeg-binary")

        with TestClient(main.app) as client:
            with client.websocket_connect(settings.server.websocket_path) as ws:
                ws.send_json({"videoUrl": "file.mp4"})

                assert ws.receive_json() == {
                    "type": "error",
                    "message": "Video processing error occurred",
                }


    def test_unexpected_load_error_does_not_leak_session(self, monkeypatch):
        broken = DetectionService(BrokenCascadeDetector())
        monkeypatch.setattr(main, "_detection_service", broken)

        with TestClient(main.app) as client:
            with client.websocket_connect(settings.server.websocket_path) as ws:
                ws.send_text("not json")
                assert ws.receive_json()["type"] == "error"

            for _ in range(100):
                data = client.get("/metrics").json()
                if data["active_sessions"] == 0:
                    break
                time.sleep(0.01)

        assert data["active_sessions"] == 0
        assert data["closed_sessions"] >= 1
        assert data["detector_ready"] is False


class TestHLSProxy:
    """Tests for the /hls-proxy route."""

    def test_forwards_and_injects_cors(self, monkeypatch):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(
                200,
                text="#EXTM3U\n",
                headers={"content-type": "application/vnd.apple.mpegurl"},
            )

        proxy = HLSProxy(settings.proxy, transport=httpx.MockTransport(handler))
        monkeypatch.setattr(main, "_proxy", proxy)

        with TestClient(main.app) as client:
            response = client.get(f"{settings.proxy.prefix}/live/index.m3u8?token=abc")

        assert response.status_code == 200
        assert response.text == "#EXTM3U\n"
        assert response.headers["access-control-allow-origin"] == "*"
        assert seen[0].url.path == "/live/index.m3u8"
        assert seen[0].url.params["token"] == "abc"

    def test_upstream_failure_is_bad_gateway(self, monkeypatch):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        proxy = HLSProxy(settings.proxy, transport=httpx.MockTransport(handler))
        monkeypatch.setattr(main, "_proxy", proxy)

        with TestClient(main.app) as client:
            response = client.get(f"{settings.proxy.prefix}/segment0.ts")

        assert response.status_code == 502
        assert response.headers["access-control-allow-origin"] == "*"
