"""
Session State Models
====================

Explicit lifecycle state for one client session.

Transitions:
    IDLE      -> STREAMING  on a stream request (decoder spawned)
    STREAMING -> STREAMING  on a new stream request (decoder replaced)
    STREAMING -> IDLE       when the current decoder exits
    *         -> CLOSED     on connection close or connection error

CLOSED is terminal.
"""

from enum import Enum


class SessionState(str, Enum):
    """
    Lifecycle states of a session.

    Attributes:
        IDLE: No decoder running
        STREAMING: One decoder alive, output being demuxed and dispatched
        CLOSED: Connection gone, decoder killed
    """

    IDLE = "IDLE"
    STREAMING = "STREAMING"
    CLOSED = "CLOSED"
