from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime

from ..adapters.archive_httpx import DEFAULT_BASE_URL, HttpxArchive
from ..adapters.metrics_prometheus import WRITE_TX_TOTAL
from ..adapters.sqlite_store import SQLiteEventStore
from ..domain.models import Event
from ..ports.archive import ArchiveSource
from ..ports.storage import EventStore
from .consumer import RateLimitedWriter
from .planning import resolve_start_hour
from .producer import DEFAULT_RETRY_DELAY, EventStream
from .stats import IngestStats, report_status

logger = logging.getLogger(__name__)

DEFAULT_QUEUE_SIZE = 1024


@dataclass(slots=True, frozen=True)
class IngestConfig:
    dsn: str
    ingest_rate: int = 1
    autocheckpoint: int = 1000
    synchronous: str = "NORMAL"
    base_url: str = DEFAULT_BASE_URL
    retry_delay: float = DEFAULT_RETRY_DELAY
    status_interval: float = 10.0
    queue_size: int = DEFAULT_QUEUE_SIZE
    max_hours: int | None = None   # None = replay forever


@dataclass(slots=True, frozen=True)
class IngestResult:
    start_hour: datetime
    cursor: datetime
    hours: int
    writes: int
    dropped: int
    fetch_failures: int


async def _wait_or_fail(aw: asyncio.Future | asyncio.Task, guard: asyncio.Task) -> None:
    """Await `aw`, but surface it if `guard` (a task meant to run forever) ends first."""
    done, _ = await asyncio.wait({aw, guard}, return_when=asyncio.FIRST_COMPLETED)
    if aw in done:
        aw.result()
        return
    guard.result()
    raise RuntimeError(f"{guard.get_name()} stopped unexpectedly")


async def run_ingest(
    config: IngestConfig,
    *,
    archive: ArchiveSource | None = None,
    store: EventStore | None = None,
    stats: IngestStats | None = None,
) -> IngestResult:
    """
    Resolve the start hour, then run producer → bounded queue → rate-limited writer,
    plus the status reporter. Runs until cancelled, or (with max_hours) until every
    enqueued event has been written.
    """
    own_store = store is None
    own_archive = archive is None
    if store is None:
        store = await SQLiteEventStore.open(
            config.dsn,
            autocheckpoint=config.autocheckpoint,
            synchronous=config.synchronous,
        )
    if archive is None:
        archive = HttpxArchive(config.base_url)
    if stats is None:
        stats = IngestStats(WRITE_TX_TOTAL)

    try:
        start_hour = await resolve_start_hour(store)
        queue: asyncio.Queue[Event] = asyncio.Queue(maxsize=config.queue_size)
        stream = EventStream(archive, store, queue, start_hour, retry_delay=config.retry_delay)
        writer = RateLimitedWriter(queue, store, stats, rate=config.ingest_rate)

        producer_task = asyncio.create_task(stream.run(config.max_hours), name="producer")
        writer_task = asyncio.create_task(writer.run(), name="writer")
        reporter_task = asyncio.create_task(report_status(stats, config.status_interval), name="reporter")
        tasks = (producer_task, writer_task, reporter_task)
        try:
            await _wait_or_fail(producer_task, writer_task)
            # bounded run: let the writer drain what is already queued
            drained = asyncio.ensure_future(queue.join())
            try:
                await _wait_or_fail(drained, writer_task)
            finally:
                drained.cancel()
        finally:
            for t in tasks:
                t.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)

        snap = stats.snapshot()
        logger.info("replayed %d hours, %s", stream.hours_done, snap.status_line())
        return IngestResult(
            start_hour=start_hour,
            cursor=stream.cursor,
            hours=stream.hours_done,
            writes=snap.writes,
            dropped=writer.dropped,
            fetch_failures=stream.failures,
        )
    finally:
        if own_archive:
            await archive.aclose()
        if own_store:
            await store.close()
