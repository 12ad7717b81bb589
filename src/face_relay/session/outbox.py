"""
Message Outbox
==============

Bounded queue of serialized messages waiting to be sent to one client.

Design Rules:
    - Fixed maximum number of droppable messages (drops oldest droppable
      on overflow)
    - Non-droppable messages (lifecycle notifications, the stop sentinel)
      are always queued and never evicted
    - Queue order is publish order for everything that is delivered
    - put() never suspends, so the pipeline never waits on the network
    - Exposes minimal metrics for observability
"""

import asyncio
import logging
from collections import deque
from typing import Deque, Optional, Tuple


logger = logging.getLogger(__name__)


class MessageOutbox:
    """
    Drop-oldest queue between the pipeline and the channel writer.

    Only entries queued with droppable=True count toward maxsize and can
    be evicted.

    Attributes:
        maxsize: Maximum number of queued droppable messages
        dropped_count: Messages dropped due to overflow

    Example:
        outbox = MessageOutbox(maxsize=64)

        # Producer (synchronous)
        outbox.put(result_text)
        outbox.put(stream_ended_text, droppable=False)

        # Consumer
        text = await outbox.get()
        ...
        outbox.task_done()
    """

    def __init__(self, maxsize: int = 64) -> None:
        if maxsize < 1:
            raise ValueError("maxsize must be >= 1")

        self._maxsize = maxsize
        self._items: Deque[Tuple[Optional[str], bool]] = deque()
        self._droppable: int = 0
        self._unfinished: int = 0
        self._not_empty = asyncio.Event()
        self._all_done = asyncio.Event()
        self._all_done.set()

        self._dropped_count: int = 0
        self._total_put: int = 0

    @property
    def maxsize(self) -> int:
        return self._maxsize

    @property
    def size(self) -> int:
        """Current number of queued messages."""
        return len(self._items)

    @property
    def dropped_count(self) -> int:
        return self._dropped_count

    def put(self, item: Optional[str], droppable: bool = True) -> bool:
        """
        Queue a message, dropping the oldest droppable one if full.

        Args:
            item: Serialized message, or None as the writer stop sentinel
            droppable: Whether this entry may be evicted on overflow

        Returns:
            True if queued without dropping anything.
        """
        self._total_put += 1
        dropped = False

        if droppable and self._droppable >= self._maxsize:
            self._evict_oldest_droppable()
            dropped = True

        self._items.append((item, droppable))
        if droppable:
            self._droppable += 1

        self._unfinished += 1
        self._all_done.clear()
        self._not_empty.set()
        return not dropped

    async def get(self) -> Optional[str]:
        """Wait for the next message."""
        while not self._items:
            self._not_empty.clear()
            await self._not_empty.wait()

        item, droppable = self._items.popleft()
        if droppable:
            self._droppable -= 1
        return item

    def task_done(self) -> None:
        """Mark the last message returned by get() as handled."""
        if self._unfinished <= 0:
            raise ValueError("task_done() called too many times")

        self._unfinished -= 1
        if self._unfinished == 0:
            self._all_done.set()

    async def join(self) -> None:
        """Wait until every queued message has been handled."""
        if self._unfinished:
            await self._all_done.wait()

    def metrics(self) -> dict:
        """
        Get outbox metrics for observability.

        Returns:
            Dict with size, maxsize, dropped_count, total_put
        """
        return {
            "size": self.size,
            "maxsize": self._maxsize,
            "dropped_count": self._dropped_count,
            "total_put": self._total_put,
        }

    def _evict_oldest_droppable(self) -> None:
        for index, (_, droppable) in enumerate(self._items):
            if droppable:
                del self._items[index]
                break

        self._droppable -= 1
        self._dropped_count += 1
        self.task_done()
        logger.warning(
            f"Outbox full, dropped oldest result. "
            f"Total dropped: {self._dropped_count}"
        )
