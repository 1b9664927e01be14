"""
Everything Is An Ordeal: Background Hit Counter
==================================================

What:  Applies hit increments after the page that triggered them was served.
How:   `submit()` puts (key, captured_hits) on an asyncio.Queue and returns
       immediately. A single consumer task writes them to the store one by one.
Who:   OrdealService submits on every successful view; the application
       lifespan starts the consumer and drains it on shutdown.

Ordering guarantee:
    One queue, one consumer: increments are written in submission order, so
    two increments for the same key are never reordered.

Failure handling:
    A failed write is logged and dropped. It is never retried and never
    reported to the viewer whose request submitted it.

Counting semantics:
    Each submission carries the hits value the viewer saw *before* its own
    view. Two viewers who read the same value both write value + 1, so
    concurrent views can be under-counted.
"""

import asyncio
import logging
from typing import Optional, Tuple

from eiao.services.ordeal_store import OrdealStore

logger = logging.getLogger(__name__)


class HitCounter:
    """
    Single-consumer queue of pending hit increments.

    The consumer starts lazily on the first submit() (or explicitly through
    start()), so the counter also works when no lifespan events are sent,
    as with httpx's ASGITransport in tests.
    """

    def __init__(self, store: OrdealStore):
        self.store = store
        self._queue: "asyncio.Queue[Tuple[str, int]]" = asyncio.Queue()
        self._worker: Optional[asyncio.Task] = None

    @property
    def pending(self) -> int:
        """Increments submitted but not yet written (or dropped)."""
        return self._queue.qsize()

    def start(self) -> None:
        """Start the consumer task if it is not already running."""
        if self._worker is None or self._worker.done():
            self._worker = asyncio.get_running_loop().create_task(
                self._run(), name="eiao-hit-counter"
            )

    def submit(self, key: str, current_hits: int) -> None:
        """Queue one increment. Never blocks and never raises on store errors."""
        self._queue.put_nowait((key, current_hits))
        self.start()

    async def drain(self) -> None:
        """Wait until every increment submitted so far has been processed."""
        if self._queue.empty():
            return
        self.start()
        await self._queue.join()

    async def stop(self) -> None:
        """Drain pending increments, then stop the consumer."""
        await self.drain()
        if self._worker is not None:
            self._worker.cancel()
            try:
                await self._worker
            except asyncio.CancelledError:
                pass
            self._worker = None

    async def _run(self) -> None:
        while True:
            key, current_hits = await self._queue.get()
            try:
                await self.store.increment_hits(key, current_hits)
                logger.debug("Hits for %r set to %d", key, current_hits + 1)
            except Exception as e:
                logger.warning("Failed to update hits for %r: %s", key, str(e))
            finally:
                self._queue.task_done()
