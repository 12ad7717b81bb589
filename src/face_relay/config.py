"""
Face Relay Configuration
========================

This module handles configuration loading for the face stream relay.

Configuration Sources (in order of precedence):
    1. Environment variables (highest priority)
    2. config.yaml file
    3. Default values (lowest priority)

Environment Variable Mapping:
    FACE_RELAY_FFMPEG_PATH       -> decoder.binary
    FACE_RELAY_FRAME_RATE        -> decoder.frame_rate
    FACE_RELAY_MAX_CONCURRENT    -> pipeline.max_concurrent_dispatches
    FACE_RELAY_DETECTOR_BACKEND  -> detection.backend
    FACE_RELAY_MODEL_PATH        -> detection.model_path
    FACE_RELAY_PROXY_TARGET      -> proxy.target
    FACE_RELAY_PORT              -> server.port
    FACE_RELAY_LOG_LEVEL         -> logging.level
    PORT                         -> server.port (Cloud Run)

Example:
    from face_relay.config import settings

    print(settings.decoder.frame_rate)
    print(settings.pipeline.resolved_max_concurrent())
"""

import os
import logging
from pathlib import Path
from typing import List, Optional

import yaml
from pydantic import BaseModel, Field


logger = logging.getLogger(__name__)


# =============================================================================
# Configuration Models
# =============================================================================

class ServerConfig(BaseModel):
    """Server configuration."""

    host: str = Field(default="0.0.0.0", description="Bind host")
    port: int = Field(default=8080, ge=1, le=65535, description="Bind port")
    websocket_path: str = Field(default="/ws", description="Client WebSocket path")


class DecoderConfig(BaseModel):
    """External decoder (ffmpeg) configuration."""

    binary: str = Field(default="ffmpeg", description="Decoder executable")
    frame_rate: int = Field(
        default=10,
        ge=1,
        le=60,
        description="Fixed output frame rate requested from the decoder",
    )
    pixel_format: str = Field(default="yuvj444p", description="MJPEG pixel format")
    quality: int = Field(default=2, ge=1, le=31, description="MJPEG quality scale (-q:v)")
    read_chunk_size: int = Field(
        default=65536,
        ge=1024,
        description="Bytes requested per stdout read",
    )
    extra_input_args: List[str] = Field(
        default_factory=list,
        description="Arguments inserted before -i (e.g. -rtsp_transport tcp)",
    )


class PipelineConfig(BaseModel):
    """Frame extraction and dispatch configuration."""

    max_concurrent_dispatches: int = Field(
        default=0,
        ge=0,
        description="In-flight detection cap per session (0 = cpu_count - 1)",
    )
    serialize_dispatch: bool = Field(
        default=True,
        description="Gate admissions on the per-session processing flag",
    )
    max_buffer_bytes: int = Field(
        default=16 * 1024 * 1024,
        ge=0,
        description="Demux buffer cap without a complete frame (0 = unbounded)",
    )
    publish_empty_results: bool = Field(
        default=False,
        description="Also publish faces_detected messages with no faces",
    )

    def resolved_max_concurrent(self) -> int:
        """Effective in-flight cap, never below 1."""
        if self.max_concurrent_dispatches > 0:
            return self.max_concurrent_dispatches
        return max(1, (os.cpu_count() or 1) - 1)


class DetectionConfig(BaseModel):
    """Face detector configuration."""

    backend: str = Field(
        default="haar",
        description="Detector backend: 'haar', 'yunet' or 'mock'",
    )
    model_path: Optional[str] = Field(
        default=None,
        description="Model file (YuNet ONNX, or a custom Haar cascade XML)",
    )
    score_threshold: float = Field(default=0.6, ge=0, le=1.0, description="YuNet score threshold")
    nms_threshold: float = Field(default=0.3, ge=0, le=1.0, description="YuNet NMS threshold")
    scale_factor: float = Field(default=1.1, gt=1.0, description="Haar pyramid scale factor")
    min_neighbors: int = Field(default=5, ge=0, description="Haar min neighbours")
    min_face_size: int = Field(default=30, ge=1, description="Smallest face side in pixels")


class SessionConfig(BaseModel):
    """Per-connection session configuration."""

    outbox_size: int = Field(
        default=64,
        ge=1,
        description="Maximum queued outbound messages per connection",
    )


class ProxyConfig(BaseModel):
    """HLS reverse proxy configuration."""

    enabled: bool = Field(default=True, description="Mount the /hls-proxy route")
    target: str = Field(default="http://intravel.amagi.tv", description="Upstream origin")
    prefix: str = Field(default="/hls-proxy", description="Path prefix stripped before forwarding")
    timeout_seconds: float = Field(default=30.0, gt=0, description="Upstream request timeout")


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = Field(default="INFO", description="Log level")
    format: str = Field(default="text", description="Log format: json or text")


class Settings(BaseModel):
    """
    Main settings class for the relay.

    Loads configuration from YAML file and environment variables.
    Environment variables take precedence over file values.
    """

    server: ServerConfig = Field(default_factory=ServerConfig)
    decoder: DecoderConfig = Field(default_factory=DecoderConfig)
    pipeline: PipelineConfig = Field(default_factory=PipelineConfig)
    detection: DetectionConfig = Field(default_factory=DetectionConfig)
    session: SessionConfig = Field(default_factory=SessionConfig)
    proxy: ProxyConfig = Field(default_factory=ProxyConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


# =============================================================================
# Configuration Loading
# =============================================================================

def load_config(config_path: Optional[str] = None) -> Settings:
    """
    Load configuration from YAML file and environment variables.

    Priority (highest to lowest):
        1. Environment variables
        2. YAML config file
        3. Default values

    Args:
        config_path: Path to config.yaml. If None, searches common locations.

    Returns:
        Settings: Loaded configuration
    """
    if config_path is None:
        config_path = os.environ.get("FACE_RELAY_CONFIG")

    if config_path is None:
        search_paths = [
            Path("config.yaml"),
            Path("config.yml"),
            Path(__file__).parent.parent.parent / "config.yaml",
        ]
        for path in search_paths:
            if path.exists():
                config_path = str(path)
                break

    config_data = {}
    if config_path and Path(config_path).exists():
        logger.info(f"Loading config from: {config_path}")
        with open(config_path, "r") as f:
            config_data = yaml.safe_load(f) or {}
    else:
        logger.debug("No config file found, using defaults and environment variables")

    _apply_env_overrides(config_data)

    return Settings.model_validate(config_data)


def _apply_env_overrides(config_data: dict) -> None:
    """Apply environment variable overrides to config data."""

    # Decoder settings
    if env_bin := os.environ.get("FACE_RELAY_FFMPEG_PATH"):
        config_data.setdefault("decoder", {})["binary"] = env_bin
    if env_rate := os.environ.get("FACE_RELAY_FRAME_RATE"):
        config_data.setdefault("decoder", {})["frame_rate"] = int(env_rate)

    # Pipeline settings
    if env_cap := os.environ.get("FACE_RELAY_MAX_CONCURRENT"):
        config_data.setdefault("pipeline", {})["max_concurrent_dispatches"] = int(env_cap)

    # Detection settings
    if env_backend := os.environ.get("FACE_RELAY_DETECTOR_BACKEND"):
        config_data.setdefault("detection", {})["backend"] = env_backend
    if env_model := os.environ.get("FACE_RELAY_MODEL_PATH"):
        config_data.setdefault("detection", {})["model_path"] = env_model

    # Proxy settings
    if env_target := os.environ.get("FACE_RELAY_PROXY_TARGET"):
        config_data.setdefault("proxy", {})["target"] = env_target

    # Server settings (Cloud Run uses PORT env var)
    if env_port := os.environ.get("PORT"):
        config_data.setdefault("server", {})["port"] = int(env_port)
    elif env_port := os.environ.get("FACE_RELAY_PORT"):
        config_data.setdefault("server", {})["port"] = int(env_port)

    # Logging settings
    if env_log := os.environ.get("FACE_RELAY_LOG_LEVEL"):
        config_data.setdefault("logging", {})["level"] = env_log


def setup_logging(settings: Settings) -> None:
    """Configure logging based on settings."""
    log_level = getattr(logging, settings.logging.level.upper(), logging.INFO)

    if settings.logging.format == "json":
        log_format = '{"time": "%(asctime)s", "level": "%(levelname)s", "module": "%(name)s", "message": "%(message)s"}'
    else:
        log_format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    logging.basicConfig(
        level=log_level,
        format=log_format,
        datefmt="%Y-%m-%dT%H:%M:%S",
    )


# =============================================================================
# Global Settings Instance
# =============================================================================

# Global settings instance - loaded on import
settings = load_config()
setup_logging(settings)
