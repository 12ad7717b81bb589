"""
Session Module
==============

Per-connection orchestration and outbound delivery.

Components:
    - SessionController: Decoder lifecycle + demux/throttle/dispatch wiring
    - SessionMetrics: Per-session counters
    - ResultPublisher: Ordered, non-blocking message delivery
    - ClientChannel, WebSocketChannel: Connection abstraction
    - MessageOutbox: Drop-oldest outbound queue
"""

from face_relay.session.outbox import MessageOutbox
from face_relay.session.publisher import ClientChannel, ResultPublisher, WebSocketChannel
from face_relay.session.controller import DecoderSpawner, SessionController, SessionMetrics


__all__ = [
    "MessageOutbox",
    "ClientChannel",
    "ResultPublisher",
    "WebSocketChannel",
    "DecoderSpawner",
    "SessionController",
    "SessionMetrics",
]
