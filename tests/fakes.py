"""
Test Doubles
============

In-process stand-ins for the decoder subprocess, the client channel and
the dispatcher. All of them must be created inside a running event loop.
"""

import asyncio
import json
from typing import List, Optional

import numpy as np

from face_relay.models.detection import BoundingBox, DetectionOutcome, Face
from face_relay.stream.decoder import DecoderProcess, DecoderSpawnError
from face_relay.stream.frame import Frame


class FakeProcess:
    """Mimics asyncio.subprocess.Process with feedable pipes."""

    _next_pid = 1000

    def __init__(self) -> None:
        FakeProcess._next_pid += 1
        self.pid = FakeProcess._next_pid
        self.stdout = asyncio.StreamReader()
        self.stderr = asyncio.StreamReader()
        self.returncode: Optional[int] = None
        self.kill_count: int = 0
        self._exited = asyncio.Event()

    def feed(self, data: bytes) -> None:
        self.stdout.feed_data(data)

    def feed_stderr(self, data: bytes) -> None:
        self.stderr.feed_data(data)

    def finish(self, code: int = 0) -> None:
        if self.returncode is not None:
            return
        self.returncode = code
        self.stdout.feed_eof()
        self.stderr.feed_eof()
        self._exited.set()

    def kill(self) -> None:
        self.kill_count += 1
        self.finish(-9)

    async def wait(self) -> int:
        await self._exited.wait()
        return self.returncode


class FakeSpawner:
    """Decoder spawner that hands out FakeProcess-backed decoders."""

    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.processes: List[FakeProcess] = []
        self.urls: List[str] = []

    async def __call__(self, url: str, generation: int) -> DecoderProcess:
        if self.fail:
            raise DecoderSpawnError("Failed to start ffmpeg: not found")
        process = FakeProcess()
        self.processes.append(process)
        self.urls.append(url)
        return DecoderProcess(process, url, generation)

    @property
    def alive(self) -> List[FakeProcess]:
        return [p for p in self.processes if p.returncode is None]


class FakeChannel:
    """ClientChannel that records sent text."""

    def __init__(self) -> None:
        self.sent: List[str] = []
        self.is_open: bool = True
        self.fail_on_send: bool = False

    async def send_text(self, data: str) -> None:
        if self.fail_on_send:
            raise RuntimeError("Cannot call send once a close message has been sent")
        self.sent.append(data)

    def messages(self) -> List[dict]:
        return [json.loads(text) for text in self.sent]

    def of_type(self, kind: str) -> List[dict]:
        return [m for m in self.messages() if m["type"] == kind]


class GatedDispatcher:
    """Dispatcher whose results are held until release() is called."""

    def __init__(self) -> None:
        self.gate = asyncio.Event()
        self.started: List[Frame] = []

    def release(self) -> None:
        self.gate.set()

    async def dispatch(self, frame: Frame) -> DetectionOutcome:
        self.started.append(frame)
        await self.gate.wait()
        face = Face(box=BoundingBox(x=1, y=2, width=3, height=4))
        return DetectionOutcome.from_faces(frame.sequence, frame.generation, [face])


def blank_image(data: bytes) -> np.ndarray:
    """Stub decode: ignores the bytes, returns a 48x64 image."""
    return np.zeros((48, 64, 3), dtype=np.uint8)


async def settle(rounds: int = 20) -> None:
    """Let ready callbacks and tasks run."""
    for _ in range(rounds):
        await asyncio.sleep(0)
