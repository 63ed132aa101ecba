from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Awaitable, Callable

from ..domain.decoding import DecodeError, decode_events
from ..domain.models import Event
from ..domain.timestamps import truncate_to_hour
from ..ports.archive import ArchiveError, ArchiveNotFound, ArchiveSource
from ..ports.storage import EventStore
from .planning import next_hour

logger = logging.getLogger(__name__)

DEFAULT_RETRY_DELAY = 60.0


class EventStream:
    """
    Walks archive hours forward from `start_hour` and feeds decoded events into `queue`.

    One hour at a time: clear the store from the hour's start, fetch, decode, enqueue.
    The cursor advances only after the whole hour was enqueued. Any failure sleeps
    `retry_delay` and retries the same hour, forever (missing hours included).
    `queue.put` blocks while the queue is full.
    """

    def __init__(
        self,
        archive: ArchiveSource,
        store: EventStore,
        queue: asyncio.Queue[Event],
        start_hour: datetime,
        *,
        retry_delay: float = DEFAULT_RETRY_DELAY,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.archive = archive
        self.store = store
        self.queue = queue
        self.cursor = truncate_to_hour(start_hour)
        self.retry_delay = retry_delay
        self._sleep = sleep
        self.hours_done = 0
        self.failures = 0

    async def process_hour(self, hour: datetime) -> int:
        """Enqueue every event of `hour`; return how many were enqueued."""
        removed = await self.store.clear_from(hour)
        if removed:
            logger.info("removed %d events at or after %s before replaying it", removed, hour.isoformat())

        payload = await self.archive.fetch(hour)

        n = 0
        for event in decode_events(payload):
            await self.queue.put(event)
            n += 1
        return n

    async def run(self, max_hours: int | None = None) -> None:
        """Run until cancelled, or until `max_hours` hours have been enqueued."""
        while max_hours is None or self.hours_done < max_hours:
            hour = self.cursor
            try:
                n = await self.process_hour(hour)
            except ArchiveNotFound as e:
                logger.warning("archive hour %s not found, waiting %gs to retry: %s",
                               hour.isoformat(), self.retry_delay, e)
            except (ArchiveError, DecodeError) as e:
                logger.warning("cannot process event stream for %s, waiting %gs to retry: %s",
                               hour.isoformat(), self.retry_delay, e)
            except Exception as e:
                # store failure during the pre-hour clear
                logger.warning("cannot prepare %s, waiting %gs to retry: %s: %s",
                               hour.isoformat(), self.retry_delay, type(e).__name__, e)
            else:
                logger.info("enqueued %d events for %s", n, hour.isoformat())
                self.cursor = next_hour(hour)
                self.hours_done += 1
                continue

            self.failures += 1
            await self._sleep(self.retry_delay)
