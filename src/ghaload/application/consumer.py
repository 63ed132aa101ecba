from __future__ import annotations

import asyncio
import logging

from ..domain.models import Event
from ..ports.storage import EventStore
from .stats import IngestStats

logger = logging.getLogger(__name__)


def tick_interval(rate: int) -> float:
    """Seconds between writes for `rate` records/second."""
    if rate < 1:
        raise ValueError(f"ingest rate must be >= 1, got {rate}")
    return 1.0 / rate


class RateLimitedWriter:
    """
    Pulls one event per tick from `queue` and upserts it.
    Ticks sit on a fixed grid; ticks missed while a write was slow are dropped.
    A failed write is logged and the event is dropped (no retry).
    """

    def __init__(self, queue: asyncio.Queue[Event], store: EventStore, stats: IngestStats, rate: int = 1) -> None:
        self.queue = queue
        self.store = store
        self.stats = stats
        self.interval = tick_interval(rate)
        self.dropped = 0

    async def write(self, event: Event) -> bool:
        try:
            await self.store.upsert(event)
        except Exception as e:
            self.dropped += 1
            logger.error("ingest error: id=%s type=%s: %s: %s", event.id, event.type, type(e).__name__, e)
            return False
        self.stats.record_write(event)
        return True

    async def run(self) -> None:
        loop = asyncio.get_running_loop()
        next_tick = loop.time() + self.interval
        while True:
            delay = next_tick - loop.time()
            if delay > 0:
                await asyncio.sleep(delay)
            now = loop.time()
            next_tick += self.interval
            if next_tick <= now:
                next_tick = now + self.interval

            event = await self.queue.get()
            try:
                await self.write(event)
            finally:
                self.queue.task_done()
