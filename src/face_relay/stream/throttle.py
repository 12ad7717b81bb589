"""
Concurrency Throttle
====================

Per-session admission gate for frame dispatch.

A frame is either admitted immediately or dropped. Nothing is queued:
under sustained load most frames are never dispatched, which keeps
latency and detector load bounded.

Design Rules:
    - admit() and release() are synchronous and never suspend
    - Every successful admit() must be paired with exactly one release()
    - Mutated only from the event loop thread that owns the session
"""

import logging


logger = logging.getLogger(__name__)


class ConcurrencyThrottle:
    """
    Admission control for in-flight detection work.

    Two gates are checked on every admission:
        1. The processing flag (when serialize is enabled): a frame is
           already being processed.
        2. The in-flight gauge: max_in_flight dispatches are running.

    Attributes:
        max_in_flight: Effective in-flight cap (never below 1)
        serialize: Whether the processing flag gates admission
        admitted_count: Total admissions
        rejected_count: Total rejections (dropped frames)

    Example:
        throttle = ConcurrencyThrottle(max_in_flight=3)

        if throttle.admit():
            try:
                await dispatch(frame)
            finally:
                throttle.release()
    """

    def __init__(self, max_in_flight: int = 1, serialize: bool = True) -> None:
        self._max_in_flight = max(1, max_in_flight)
        self.serialize = serialize

        self._in_flight: int = 0
        self._processing: bool = False
        self.admitted_count: int = 0
        self.rejected_count: int = 0

    @property
    def max_in_flight(self) -> int:
        return self._max_in_flight

    @property
    def in_flight(self) -> int:
        """Number of admitted dispatches not yet released."""
        return self._in_flight

    @property
    def processing(self) -> bool:
        """Whether a frame is currently being processed."""
        return self._processing

    def admit(self) -> bool:
        """
        Try to admit one frame for dispatch.

        Returns:
            True if admitted (caller must release()), False if the
            frame should be dropped.
        """
        if self.serialize and self._processing:
            self.rejected_count += 1
            return False

        if self._in_flight >= self._max_in_flight:
            self.rejected_count += 1
            return False

        self._in_flight += 1
        self._processing = True
        self.admitted_count += 1
        return True

    def release(self) -> None:
        """Release one admitted slot after its dispatch finished."""
        if self._in_flight == 0:
            logger.error("ConcurrencyThrottle.release() called with nothing in flight")
            return

        self._in_flight -= 1
        self._processing = self._in_flight > 0

    def metrics(self) -> dict:
        """
        Get throttle metrics for observability.

        Returns:
            Dict with in_flight, max_in_flight, admitted, rejected
        """
        return {
            "in_flight": self._in_flight,
            "max_in_flight": self._max_in_flight,
            "admitted": self.admitted_count,
            "rejected": self.rejected_count,
        }
