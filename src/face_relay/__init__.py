"""
face_relay
==========

Live video relay with per-frame face detection.

A client opens a WebSocket, sends a stream URL, and receives face
detections for frames of that stream in near real time. Each connection
gets its own ffmpeg decoder; frames are extracted from its MJPEG output,
throttled, run through a shared face detector and pushed back.

Components:
    - stream: Decoder process, frame demuxer, admission throttle
    - perception: Face detector backends and dispatcher
    - session: Per-connection controller and result publisher
    - proxy: HLS reverse proxy with CORS
    - models: Wire and outcome models

Example:
    from face_relay.config import settings

    # Service is started via the FastAPI application
    # See main.py for entry point
"""

__version__ = "0.1.0"

__all__ = [
    "__version__",
]
