"""
Result Publisher
================

Ordered, fire-and-forget delivery of outbound messages to one client.

The pipeline calls publish() synchronously; a single writer task drains
the outbox and performs the actual sends, so messages leave in exactly
the order they were published.

Design Rules:
    - publish() never raises and never suspends
    - Nothing is sent once the channel is closed
    - A disconnect during send closes the publisher quietly
    - Under backlog only faces_detected messages are dropped; error and
      stream_ended notifications are always delivered
"""

import asyncio
import logging
from typing import Optional, Protocol

from fastapi import WebSocket
from starlette.websockets import WebSocketDisconnect, WebSocketState
from websockets.exceptions import ConnectionClosed

from face_relay.models.messages import FacesDetectedMessage, OutboundMessage, serialize_message
from face_relay.session.outbox import MessageOutbox


logger = logging.getLogger(__name__)


# Errors that mean the peer is gone
_DISCONNECT_ERRORS = (WebSocketDisconnect, ConnectionClosed, RuntimeError, OSError)


class ClientChannel(Protocol):
    """Message-oriented connection to one client."""

    @property
    def is_open(self) -> bool:
        ...

    async def send_text(self, data: str) -> None:
        ...


class WebSocketChannel:
    """ClientChannel over a FastAPI/Starlette WebSocket."""

    def __init__(self, websocket: WebSocket) -> None:
        self._websocket = websocket

    @property
    def is_open(self) -> bool:
        return (
            self._websocket.client_state == WebSocketState.CONNECTED
            and self._websocket.application_state == WebSocketState.CONNECTED
        )

    async def send_text(self, data: str) -> None:
        await self._websocket.send_text(data)


class ResultPublisher:
    """
    Serializes and sends messages for one session.

    Attributes:
        channel: Client connection
        sent_count: Messages actually written to the channel
        skipped_count: Messages discarded because the channel was closed

    Example:
        publisher = ResultPublisher(WebSocketChannel(websocket))
        publisher.start()

        publisher.publish(StreamEndedMessage())

        await publisher.aclose()
    """

    def __init__(self, channel: ClientChannel, outbox_size: int = 64) -> None:
        self.channel = channel
        self._outbox = MessageOutbox(maxsize=outbox_size)
        self._writer: Optional[asyncio.Task] = None
        self._closed: bool = False
        self._disconnected: bool = False

        self.sent_count: int = 0
        self.skipped_count: int = 0

    @property
    def closed(self) -> bool:
        return self._closed

    def start(self) -> None:
        """Start the writer task. Must be called from the event loop."""
        if self._writer is None:
            self._writer = asyncio.create_task(self._drain(), name="result_publisher")

    def publish(self, message: OutboundMessage) -> bool:
        """
        Queue a message for delivery.

        Returns:
            False if the message was discarded because the channel is closed.
        """
        if self._closed or self._disconnected or not self.channel.is_open:
            self.skipped_count += 1
            return False

        # Only detection results may be evicted by a slow client
        droppable = isinstance(message, FacesDetectedMessage)
        self._outbox.put(serialize_message(message), droppable=droppable)
        return True

    async def flush(self) -> None:
        """Wait until everything published so far has been handled."""
        await self._outbox.join()

    async def aclose(self, timeout: float = 1.0) -> None:
        """
        Stop accepting messages and shut the writer down.

        Messages already queued are still sent if the channel is open.
        """
        if self._closed and self._writer is None:
            return

        self._closed = True
        writer, self._writer = self._writer, None
        if writer is None or writer.done():
            return

        self._outbox.put(None, droppable=False)
        try:
            await asyncio.wait_for(writer, timeout=timeout)
        except asyncio.TimeoutError:
            logger.debug("Publisher writer did not stop in time, cancelled")

    def metrics(self) -> dict:
        return {
            "sent": self.sent_count,
            "skipped": self.skipped_count,
            **self._outbox.metrics(),
        }

    async def _drain(self) -> None:
        while True:
            text = await self._outbox.get()
            try:
                if text is None:
                    break

                if self._disconnected or not self.channel.is_open:
                    self.skipped_count += 1
                    continue

                try:
                    await self.channel.send_text(text)
                    self.sent_count += 1
                except _DISCONNECT_ERRORS as e:
                    self.skipped_count += 1
                    self._disconnected = True
                    logger.debug(f"Send failed, client gone: {e}")
            finally:
                self._outbox.task_done()

        logger.debug("Publisher writer stopped")
