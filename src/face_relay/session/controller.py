"""
Session Controller
==================

Owns one client connection and at most one decoder process.

Per decoder generation, three kinds of task run on the event loop:
    - a supervisor that pumps stdout into the demuxer and waits for exit
    - a stderr pump that classifies and logs diagnostics
    - one dispatch pass per stdout chunk that produced frames

The stdout pump never waits on detection. Frames that arrive while a
pass holds the throttle are dropped, so ffmpeg is never back-pressured
by inference.

Every frame and outcome carries the generation of the decoder that
produced it. Outcomes from a superseded generation are discarded instead
of being published. Exits are always announced with stream_ended while
the session is open; only the current generation's exit returns the
session to IDLE.
"""

import asyncio
import logging
import uuid
from typing import Awaitable, Callable, List, Optional, Set, Union

from face_relay.config import PipelineConfig
from face_relay.models.detection import DetectionOutcome, OutcomeStatus
from face_relay.models.messages import (
    PROCESSING_ERROR_MESSAGE,
    REQUEST_ERROR_MESSAGE,
    ErrorMessage,
    FacesDetectedMessage,
    InvalidClientMessage,
    StreamEndedMessage,
    parse_client_message,
)
from face_relay.models.state import SessionState
from face_relay.perception.dispatcher import DetectionDispatcher
from face_relay.session.publisher import ResultPublisher
from face_relay.stream.decoder import (
    DecoderProcess,
    DecoderSpawnError,
    DiagnosticKind,
    classify_diagnostic,
    split_diagnostic_lines,
)
from face_relay.stream.demuxer import FrameDemuxer
from face_relay.stream.frame import Frame
from face_relay.stream.throttle import ConcurrencyThrottle


logger = logging.getLogger(__name__)


DecoderSpawner = Callable[[str, int], Awaitable[DecoderProcess]]

_STDERR_READ_SIZE = 4096
_STDERR_MAX_PENDING = 64 * 1024


class SessionMetrics:
    """Metrics for SessionController observability."""

    __slots__ = (
        "streams_started",
        "frames_demuxed",
        "frames_dispatched",
        "frames_dropped",
        "results_published",
        "stale_results",
        "decoder_errors",
        "request_errors",
    )

    def __init__(self) -> None:
        self.streams_started: int = 0
        self.frames_demuxed: int = 0
        self.frames_dispatched: int = 0
        self.frames_dropped: int = 0
        self.results_published: int = 0
        self.stale_results: int = 0
        self.decoder_errors: int = 0
        self.request_errors: int = 0

    def to_dict(self) -> dict:
        """Export metrics as dict."""
        return {name: getattr(self, name) for name in self.__slots__}


class SessionController:
    """
    Per-connection pipeline driver.

    Attributes:
        session_id: Short id used in log lines
        publisher: Outbound message publisher for this connection
        dispatcher: Shared-service dispatcher (decode + detect)
        state: Current SessionState
        generation: Id of the newest decoder instance (0 before any)
        throttle: Admission gate shared by all generations of this session
        metrics: Operational counters

    Example:
        session = SessionController(publisher, dispatcher, spawner=spawn)
        await session.open()

        await session.handle_message('{"videoUrl": "rtsp://cam/1"}')
        ...
        await session.close()
    """

    def __init__(
        self,
        publisher: ResultPublisher,
        dispatcher: DetectionDispatcher,
        spawner: DecoderSpawner,
        pipeline: Optional[PipelineConfig] = None,
        read_chunk_size: int = 65536,
    ) -> None:
        pipeline = pipeline or PipelineConfig()

        self.session_id = uuid.uuid4().hex[:8]
        self.publisher = publisher
        self.dispatcher = dispatcher
        self._spawner = spawner
        self._read_chunk_size = read_chunk_size
        self._max_buffer_bytes = pipeline.max_buffer_bytes
        self._publish_empty = pipeline.publish_empty_results

        self.throttle = ConcurrencyThrottle(
            max_in_flight=pipeline.resolved_max_concurrent(),
            serialize=pipeline.serialize_dispatch,
        )
        self.metrics = SessionMetrics()

        self._state = SessionState.IDLE
        self._generation: int = 0
        self._decoder: Optional[DecoderProcess] = None
        self._tasks: Set[asyncio.Task] = set()

    # -------------------------------------------------------------------------
    # Properties
    # -------------------------------------------------------------------------

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def decoder(self) -> Optional[DecoderProcess]:
        """The current generation's decoder, if one is running."""
        return self._decoder

    # -------------------------------------------------------------------------
    # Connection events
    # -------------------------------------------------------------------------

    async def open(self) -> None:
        """Start the publisher. Called once the connection is accepted."""
        self.publisher.start()
        logger.info(f"[{self.session_id}] Session opened")

    async def handle_message(self, raw: Union[str, bytes]) -> None:
        """
        Handle one inbound client message.

        Malformed messages are answered with an error notification;
        the session keeps running.
        """
        if self._state is SessionState.CLOSED:
            return

        try:
            request = parse_client_message(raw)
        except InvalidClientMessage as e:
            self.metrics.request_errors += 1
            logger.error(f"[{self.session_id}] WebSocket message error: {e}")
            self.publisher.publish(ErrorMessage(message=REQUEST_ERROR_MESSAGE))
            return

        if request.is_stop:
            self.stop_stream()
        else:
            await self.start_stream(request.video_url)

    async def close(self) -> None:
        """
        Tear the session down on connection close or error.

        Kills the active decoder without waiting for it. Idempotent.
        """
        if self._state is SessionState.CLOSED:
            return

        self._state = SessionState.CLOSED
        if self._decoder is not None:
            self._decoder.kill()

        await self.publisher.aclose()
        logger.info(f"[{self.session_id}] Session closed: {self.metrics.to_dict()}")

    # -------------------------------------------------------------------------
    # Stream lifecycle
    # -------------------------------------------------------------------------

    async def start_stream(self, url: str) -> None:
        """
        Start decoding `url`, replacing any running decoder.

        The old decoder is killed before the new one is spawned; its exit
        is not awaited.
        """
        if self._state is SessionState.CLOSED:
            return

        logger.info(f"[{self.session_id}] Processing video URL: {url}")

        if self._decoder is not None:
            logger.info(f"[{self.session_id}] Killing existing decoder")
            self._decoder.kill()
            self._decoder = None

        self._generation += 1
        generation = self._generation

        try:
            decoder = await self._spawner(url, generation)
        except DecoderSpawnError as e:
            self.metrics.decoder_errors += 1
            logger.error(f"[{self.session_id}] Decoder process error: {e}")
            if generation == self._generation and self._state is not SessionState.CLOSED:
                self._state = SessionState.IDLE
                self.publisher.publish(ErrorMessage(message=PROCESSING_ERROR_MESSAGE))
                self.publisher.publish(StreamEndedMessage())
            return

        if generation != self._generation or self._state is SessionState.CLOSED:
            # Superseded or closed while spawning
            decoder.kill()
            self._track(self._reap(decoder))
            return

        self._decoder = decoder
        self._state = SessionState.STREAMING
        self.metrics.streams_started += 1
        self._track(self._supervise(decoder))

    def stop_stream(self) -> None:
        """Kill the current decoder; its exit publishes stream_ended."""
        if self._decoder is None:
            logger.debug(f"[{self.session_id}] Stop requested with no active decoder")
            return

        logger.info(f"[{self.session_id}] Stopping decoder on client request")
        self._decoder.kill()

    async def join(self) -> None:
        """Wait for every task this session has started to finish."""
        while True:
            pending = [task for task in self._tasks if not task.done()]
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)

    # -------------------------------------------------------------------------
    # Decoder pumps
    # -------------------------------------------------------------------------

    async def _supervise(self, decoder: DecoderProcess) -> None:
        generation = decoder.generation
        stderr_task = asyncio.create_task(self._pump_stderr(decoder))
        passes: Set[asyncio.Task] = set()

        try:
            await self._pump_stdout(decoder, passes)
        except Exception as e:
            self.metrics.decoder_errors += 1
            logger.error(f"[{self.session_id}] Decoder process error: {e}")
            if self._is_current(generation):
                self.publisher.publish(ErrorMessage(message=PROCESSING_ERROR_MESSAGE))
            decoder.kill()

        code = await decoder.wait()
        await asyncio.gather(stderr_task, return_exceptions=True)
        logger.info(f"[{self.session_id}] Decoder process exited with code {code}")

        # stream_ended goes out after this generation's last result
        if passes:
            await asyncio.gather(*list(passes), return_exceptions=True)

        self._on_decoder_exit(decoder)

    async def _reap(self, decoder: DecoderProcess) -> None:
        code = await decoder.wait()
        logger.debug(f"[{self.session_id}] Discarded decoder exited with code {code}")

    async def _pump_stdout(self, decoder: DecoderProcess, passes: Set[asyncio.Task]) -> None:
        generation = decoder.generation
        demuxer = FrameDemuxer(max_buffer_bytes=self._max_buffer_bytes)
        sequence = 0

        while True:
            chunk = await decoder.stdout.read(self._read_chunk_size)
            if not chunk:
                break

            images = demuxer.feed(chunk)
            if not images or not self._is_current(generation):
                continue

            frames: List[Frame] = []
            for data in images:
                frames.append(Frame(sequence=sequence, generation=generation, data=data))
                sequence += 1

            self.metrics.frames_demuxed += len(frames)
            task = self._track(self._dispatch_pass(frames))
            passes.add(task)
            task.add_done_callback(passes.discard)

        if demuxer.buffered:
            logger.debug(
                f"[{self.session_id}] Decoder output ended with "
                f"{demuxer.buffered} undemuxed bytes"
            )

    async def _pump_stderr(self, decoder: DecoderProcess) -> None:
        pending = b""

        while True:
            data = await decoder.stderr.read(_STDERR_READ_SIZE)
            if not data:
                break

            pending += data
            cut = max(pending.rfind(b"\n"), pending.rfind(b"\r"))
            if cut == -1:
                if len(pending) > _STDERR_MAX_PENDING:
                    self._log_diagnostics(pending)
                    pending = b""
                continue

            self._log_diagnostics(pending[:cut + 1])
            pending = pending[cut + 1:]

        if pending:
            self._log_diagnostics(pending)

    def _log_diagnostics(self, data: bytes) -> None:
        for line in split_diagnostic_lines(data):
            kind = classify_diagnostic(line)
            if kind is DiagnosticKind.STARTUP:
                logger.debug(f"[{self.session_id}] FFmpeg: {line}")
            elif kind is DiagnosticKind.ERROR:
                logger.error(f"[{self.session_id}] FFmpeg error: {line}")

    # -------------------------------------------------------------------------
    # Dispatch
    # -------------------------------------------------------------------------

    async def _dispatch_pass(self, frames: List[Frame]) -> None:
        for frame in frames:
            if not self._is_current(frame.generation):
                self.metrics.stale_results += 1
                continue

            if not self.throttle.admit():
                self.metrics.frames_dropped += 1
                continue

            try:
                outcome = await self.dispatcher.dispatch(frame)
            finally:
                self.throttle.release()

            self.metrics.frames_dispatched += 1
            self._publish_outcome(outcome)

    def _publish_outcome(self, outcome: DetectionOutcome) -> None:
        if not self._is_current(outcome.generation):
            self.metrics.stale_results += 1
            logger.debug(f"[{self.session_id}] Discarding stale {outcome!r}")
            return

        if outcome.status is OutcomeStatus.FAILED:
            return

        if not outcome.faces and not self._publish_empty:
            return

        published = self.publisher.publish(
            FacesDetectedMessage(frame_number=outcome.sequence, faces=list(outcome.faces))
        )
        if published:
            self.metrics.results_published += 1

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _on_decoder_exit(self, decoder: DecoderProcess) -> None:
        if self._decoder is decoder:
            self._decoder = None

        if self._state is SessionState.CLOSED:
            return

        if self._is_current(decoder.generation):
            self._state = SessionState.IDLE
        else:
            logger.debug(
                f"[{self.session_id}] Superseded decoder generation "
                f"{decoder.generation} exited"
            )

        # Every exit is announced, including a replaced decoder's
        self.publisher.publish(StreamEndedMessage())

    def _is_current(self, generation: int) -> bool:
        return self._state is not SessionState.CLOSED and generation == self._generation

    def _track(self, coro: Awaitable) -> asyncio.Task:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task
