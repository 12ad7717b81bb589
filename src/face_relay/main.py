"""
Face Relay Main Application
===========================

FastAPI entry point for the face stream relay.

Endpoints:
    GET  /                - Service information
    GET  /health          - Liveness probe (is process alive?)
    GET  /ready           - Readiness probe (detector loaded?)
    GET  /metrics         - Session and pipeline counters
    WS   /ws              - Client stream sessions
    *    /hls-proxy/{path} - Reverse proxy to the HLS origin
"""

import asyncio
import logging
import os
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional, Set

from fastapi import FastAPI, Request, Response, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from face_relay import __version__
from face_relay.config import settings
from face_relay.perception import (
    DetectionDispatcher,
    DetectionService,
    create_detector,
)
from face_relay.proxy import HLSProxy
from face_relay.session import ResultPublisher, SessionController, WebSocketChannel
from face_relay.stream import DecoderProcess


logger = logging.getLogger(__name__)


# =============================================================================
# Global State
# =============================================================================

_detection_service: Optional[DetectionService] = None
_warmup_task: Optional[asyncio.Task] = None
_proxy: Optional[HLSProxy] = None
_sessions: Set[SessionController] = set()
_startup_time: float = 0.0

# Counters of sessions that already finished
_closed_sessions: int = 0


# =============================================================================
# Getters
# =============================================================================

def get_detection_service() -> DetectionService:
    global _detection_service
    if _detection_service is None:
        _detection_service = DetectionService(create_detector(settings.detection))
    return _detection_service

def get_proxy() -> HLSProxy:
    global _proxy
    if _proxy is None:
        _proxy = HLSProxy(settings.proxy)
    return _proxy

def get_sessions() -> Set[SessionController]:
    return _sessions


# =============================================================================
# Decoder Factory
# =============================================================================

async def spawn_decoder(url: str, generation: int) -> DecoderProcess:
    """Start an ffmpeg decoder for one session generation."""
    return await DecoderProcess.spawn(url, generation, settings.decoder)


# =============================================================================
# Loop Fault Handling
# =============================================================================

def _handle_loop_exception(loop: asyncio.AbstractEventLoop, context: dict) -> None:
    """Log unobserved task failures instead of letting them vanish."""
    exc = context.get("exception")
    message = context.get("message", "Unhandled exception in event loop")
    if exc is not None:
        logger.error(f"Unhandled exception: {message}: {exc!r}", exc_info=exc)
    else:
        logger.error(f"Unhandled event loop error: {message}")


async def _warm_up_detector(service: DetectionService) -> None:
    try:
        await service.ensure_ready()
    except Exception as e:
        logger.error(f"Detector warm-up failed: {e}")


# =============================================================================
# Lifespan Management
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan manager with graceful shutdown."""
    global _warmup_task, _startup_time, _detection_service

    _startup_time = time.time()
    asyncio.get_running_loop().set_exception_handler(_handle_loop_exception)
    logger.info(f"Starting face-stream-relay {__version__}")
    logger.info(
        f"Decoder: {settings.decoder.binary} @ {settings.decoder.frame_rate} fps, "
        f"max concurrent dispatches: {settings.pipeline.resolved_max_concurrent()}"
    )

    # Model load runs in the background; sessions wait on it lazily
    service = get_detection_service()
    _warmup_task = asyncio.create_task(_warm_up_detector(service), name="detector_warmup")

    if settings.proxy.enabled:
        logger.info(f"Proxying {settings.proxy.prefix}/ -> {settings.proxy.target}")

    yield

    # Shutdown
    logger.info("Shutting down gracefully...")

    for session in list(_sessions):
        await session.close()
    for session in list(_sessions):
        try:
            await asyncio.wait_for(session.join(), timeout=5.0)
        except asyncio.TimeoutError:
            logger.warning(f"[{session.session_id}] Tasks still running at shutdown")

    if _warmup_task and not _warmup_task.done():
        _warmup_task.cancel()

    if _proxy is not None:
        await _proxy.close()

    # The service's lock belongs to this loop
    _detection_service = None

    logger.info("Shutdown complete")


# =============================================================================
# FastAPI Application
# =============================================================================

app = FastAPI(
    title="face-stream-relay",
    description="Live video relay with per-frame face detection",
    version=__version__,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)


# =============================================================================
# HTTP Endpoints
# =============================================================================

@app.get("/")
async def root() -> JSONResponse:
    """Service information endpoint."""
    return JSONResponse({
        "service": "face-stream-relay",
        "version": __version__,
        "status": "running",
        "detector_backend": settings.detection.backend,
        "websocket_path": settings.server.websocket_path,
    })


@app.get("/health")
async def health() -> JSONResponse:
    """
    Liveness probe - is the process alive?

    Always returns 200 if the service is running.
    """
    return JSONResponse({
        "status": "healthy",
        "uptime_seconds": round(time.time() - _startup_time, 1),
    })


@app.get("/ready")
async def ready() -> JSONResponse:
    """
    Readiness probe - has the detector finished loading?

    Returns 503 until the model load completes.
    """
    service = get_detection_service()

    if service.ready:
        return JSONResponse({
            "status": "ready",
            "detector_backend": service.backend,
            "load_seconds": round(service.load_seconds or 0.0, 3),
        })
    return JSONResponse(
        {"status": "not_ready", "detector_backend": service.backend},
        status_code=503,
    )


@app.get("/metrics")
async def metrics() -> JSONResponse:
    """Session and pipeline counters across live sessions."""
    totals: dict = {}
    for session in _sessions:
        for key, value in session.metrics.to_dict().items():
            totals[key] = totals.get(key, 0) + value

    return JSONResponse({
        "uptime_seconds": round(time.time() - _startup_time, 1),
        "active_sessions": len(_sessions),
        "streaming_sessions": sum(1 for s in _sessions if s.decoder is not None),
        "closed_sessions": _closed_sessions,
        "detector_ready": get_detection_service().ready,
        **totals,
    })


if settings.proxy.enabled:

    @app.api_route(
        settings.proxy.prefix.rstrip("/") + "/{path:path}",
        methods=["GET", "HEAD", "POST", "PUT", "DELETE", "PATCH"],
    )
    async def hls_proxy(path: str, request: Request) -> Response:
        """Forward to the HLS origin with the prefix stripped."""
        return await get_proxy().forward(request, path)


# =============================================================================
# WebSocket Endpoints
# =============================================================================

@app.websocket(settings.server.websocket_path)
async def stream_session(websocket: WebSocket) -> None:
    """One client session: stream requests in, detections out."""
    global _closed_sessions

    await websocket.accept()

    service = get_detection_service()
    session = SessionController(
        publisher=ResultPublisher(
            WebSocketChannel(websocket),
            outbox_size=settings.session.outbox_size,
        ),
        dispatcher=DetectionDispatcher(service),
        spawner=spawn_decoder,
        pipeline=settings.pipeline,
        read_chunk_size=settings.decoder.read_chunk_size,
    )
    _sessions.add(session)
    logger.info(f"[{session.session_id}] Client connected")

    try:
        try:
            await service.ensure_ready()
        except Exception as e:
            # Frames retry the load through the dispatcher
            logger.error(f"[{session.session_id}] Detector not available: {e}")

        await session.open()

        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                break

            raw = message.get("text")
            if raw is None:
                raw = message.get("bytes") or b""
            await session.handle_message(raw)

    except WebSocketDisconnect:
        pass
    except Exception as e:
        logger.warning(f"[{session.session_id}] WebSocket error: {e}")
    finally:
        await session.close()
        _sessions.discard(session)
        _closed_sessions += 1
        logger.info(f"[{session.session_id}] Client disconnected")


# =============================================================================
# Main Entry Point
# =============================================================================

def run() -> None:
    """Console entry point."""
    import uvicorn

    port = int(os.environ.get("PORT", settings.server.port))

    uvicorn.run(
        "face_relay.main:app",
        host=settings.server.host,
        port=port,
        reload=False,
    )


if __name__ == "__main__":
    run()
