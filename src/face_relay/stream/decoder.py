"""
Decoder Process
===============

Lifecycle wrapper around the external ffmpeg decoder.

ffmpeg is asked to re-encode the source at a fixed frame rate as a stream
of JPEG images written to stdout (image2pipe + mjpeg). Its stderr carries
banner, startup and progress text plus real errors.

Design Rules:
    - One DecoderProcess per generation; never restarted
    - kill() is immediate, idempotent and safe after exit
    - Exit is observed asynchronously via wait(), never assumed from kill()
"""

import asyncio
import logging
import re
from enum import Enum
from typing import Any, List, Optional

from face_relay.config import DecoderConfig


logger = logging.getLogger(__name__)


# Startup / banner text ffmpeg prints before frames start flowing
_STARTUP_MARKERS = (
    "Stream mapping:",
    "Output #0",
    "Press [q] to stop",
    "Input #",
    "Duration:",
    "Stream #",
    "Metadata:",
)

# Periodic progress line, e.g. "frame=   42 fps= 10 q=2.0 size=..."
_PROGRESS_MARKERS = ("frame=", "fps=")

_LINE_SPLIT = re.compile(r"[\r\n]+")


class DecoderSpawnError(Exception):
    """Raised when the decoder process cannot be started."""
    pass


class DiagnosticKind(str, Enum):
    """
    Classification of one decoder stderr line.

    Attributes:
        STARTUP: Known startup/banner text, logged at DEBUG
        PROGRESS: Periodic frame/fps counter, not logged
        ERROR: Anything else, logged at ERROR
    """

    STARTUP = "STARTUP"
    PROGRESS = "PROGRESS"
    ERROR = "ERROR"


def classify_diagnostic(line: str) -> DiagnosticKind:
    """Classify a single stderr line."""
    if any(marker in line for marker in _STARTUP_MARKERS):
        return DiagnosticKind.STARTUP
    if any(marker in line for marker in _PROGRESS_MARKERS):
        return DiagnosticKind.PROGRESS
    return DiagnosticKind.ERROR


def split_diagnostic_lines(data: bytes) -> List[str]:
    """
    Split a raw stderr chunk into non-empty lines.

    ffmpeg terminates progress updates with a bare carriage return,
    so both \\r and \\n are treated as separators.
    """
    text = data.decode("utf-8", errors="replace")
    return [line.strip() for line in _LINE_SPLIT.split(text) if line.strip()]


def build_ffmpeg_command(url: str, config: DecoderConfig) -> List[str]:
    """
    Build the decoder command line for a source URL.

    Args:
        url: Any input ffmpeg accepts (HLS, RTSP, file, ...)
        config: Decoder settings (binary, frame rate, encoding)

    Returns:
        Argument vector suitable for create_subprocess_exec
    """
    return [
        config.binary,
        "-hide_banner",
        "-nostdin",
        *config.extra_input_args,
        "-i", url,
        "-vf", f"fps={config.frame_rate}",
        "-f", "image2pipe",
        "-vcodec", "mjpeg",
        "-pix_fmt", config.pixel_format,
        "-q:v", str(config.quality),
        "-",
    ]


class DecoderProcess:
    """
    One running decoder instance.

    Wraps an asyncio subprocess (or any object with the same
    stdout/stderr/returncode/kill/wait surface).

    Attributes:
        url: Source URL being decoded
        generation: Session generation this instance belongs to
        killed: Whether kill() has been called

    Example:
        decoder = await DecoderProcess.spawn(url, generation=1, config=cfg)

        chunk = await decoder.stdout.read(65536)
        ...
        decoder.kill()
        code = await decoder.wait()
    """

    def __init__(self, process: Any, url: str, generation: int) -> None:
        self._process = process
        self.url = url
        self.generation = generation
        self.killed: bool = False

    @classmethod
    async def spawn(
        cls,
        url: str,
        generation: int,
        config: DecoderConfig,
    ) -> "DecoderProcess":
        """
        Start a decoder for the given URL.

        Raises:
            DecoderSpawnError: If the executable cannot be started
        """
        cmd = build_ffmpeg_command(url, config)
        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise DecoderSpawnError(f"Failed to start {config.binary}: {e}") from e

        logger.info(f"Decoder started: PID={process.pid} generation={generation}")
        return cls(process, url, generation)

    @property
    def pid(self) -> Optional[int]:
        return getattr(self._process, "pid", None)

    @property
    def stdout(self) -> asyncio.StreamReader:
        return self._process.stdout

    @property
    def stderr(self) -> asyncio.StreamReader:
        return self._process.stderr

    @property
    def returncode(self) -> Optional[int]:
        return self._process.returncode

    @property
    def alive(self) -> bool:
        """Whether the process has not been reaped yet."""
        return self._process.returncode is None

    def kill(self) -> None:
        """
        Send SIGKILL without waiting for exit.

        Safe to call repeatedly and after the process has exited.
        """
        if self.killed or self._process.returncode is not None:
            self.killed = True
            return

        self.killed = True
        try:
            self._process.kill()
            logger.info(f"Decoder killed: PID={self.pid} generation={self.generation}")
        except ProcessLookupError:
            logger.debug(f"Decoder already gone: PID={self.pid}")

    async def wait(self) -> int:
        """Wait for the process to exit and return its exit code."""
        return await self._process.wait()

    def __repr__(self) -> str:
        return (
            f"DecoderProcess(pid={self.pid}, "
            f"generation={self.generation}, "
            f"returncode={self.returncode})"
        )
