"""Bounded hand-off between a discovery source and the orchestrator.

Back-pressure policy is drop-oldest: when the buffer is full the stalest
announcement is discarded to make room. A sniper only cares about the
newest listings, and a discovery stream must never block on a slow consumer.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Protocol

from sniper.discovery.models import DiscoveryEvent

logger = logging.getLogger(__name__)


class DiscoveryChannel:
    def __init__(self, maxsize: int = 256) -> None:
        if maxsize <= 0:
            raise ValueError("DiscoveryChannel needs a positive capacity")
        self._queue: asyncio.Queue[DiscoveryEvent] = asyncio.Queue(maxsize=maxsize)
        self.dropped = 0

    def put(self, event: DiscoveryEvent) -> bool:
        """Enqueue without blocking. Returns False if an older event was dropped."""
        dropped = False
        if self._queue.full():
            stale = self._queue.get_nowait()
            self._queue.task_done()
            self.dropped += 1
            dropped = True
            logger.debug(
                "discovery_event_dropped",
                extra={"address": stale.token.address, "dropped_total": self.dropped},
            )
        self._queue.put_nowait(event)
        return not dropped

    async def get(self) -> DiscoveryEvent:
        return await self._queue.get()

    def task_done(self) -> None:
        self._queue.task_done()

    def qsize(self) -> int:
        return self._queue.qsize()

    @property
    def maxsize(self) -> int:
        return self._queue.maxsize


class DiscoverySource(Protocol):
    """Anything that pushes DiscoveryEvents into a channel until stopped."""

    async def start(self, channel: DiscoveryChannel) -> None: ...

    async def stop(self) -> None: ...
