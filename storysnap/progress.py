"""Best-effort progress feed for a presentation layer."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Literal, Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProgressEvent:
    kind: Literal["start", "done"]
    index: int
    name: str
    url: str
    instance_id: Optional[int]  # None if the case crashed unexpectedly
    status: Optional[str] = None
    error: str = ""


class ProgressFeed:
    """Bounded event queue. ``emit`` never blocks; events are dropped when full."""

    def __init__(self, maxsize: int = 256):
        self._queue: asyncio.Queue[Optional[ProgressEvent]] = asyncio.Queue(maxsize=max(maxsize, 1))
        self._closed = False
        self.dropped = 0

    def emit(self, event: ProgressEvent) -> bool:
        if self._closed:
            return False
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            self.dropped += 1
            return False
        return True

    def close(self) -> None:
        """Stop the feed. A full queue loses its oldest event to fit the end marker."""
        if self._closed:
            return
        self._closed = True
        if self._queue.full():
            self._queue.get_nowait()
            self.dropped += 1
        self._queue.put_nowait(None)
        if self.dropped:
            logger.debug("Progress feed dropped %d events", self.dropped)

    def __aiter__(self) -> "ProgressFeed":
        return self

    async def __anext__(self) -> ProgressEvent:
        event = await self._queue.get()
        if event is None:
            raise StopAsyncIteration
        return event
