from __future__ import annotations

import asyncio
import logging
import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Protocol

from ..domain.models import Event
from ..domain.timestamps import format_rfc3339

logger = logging.getLogger(__name__)


class _Incrementable(Protocol):
    def inc(self, amount: float = 1) -> None: ...


@dataclass(slots=True, frozen=True)
class StatsSnapshot:
    writes: int
    last_created_at: datetime | None

    def status_line(self) -> str:
        t = format_rfc3339(self.last_created_at) if self.last_created_at else "-"
        return f"status: t={t} writes={self.writes}"


class IngestStats:
    """Process-wide write counters. The lock is held only for the read/update."""

    def __init__(self, write_tx_counter: _Incrementable | None = None) -> None:
        self._lock = threading.Lock()
        self._writes = 0
        self._last_created_at: datetime | None = None
        self._counter = write_tx_counter

    def record_write(self, event: Event) -> None:
        """Call once per committed upsert."""
        with self._lock:
            self._writes += 1
            self._last_created_at = event.created_at
        if self._counter is not None:
            self._counter.inc()

    def snapshot(self) -> StatsSnapshot:
        with self._lock:
            return StatsSnapshot(self._writes, self._last_created_at)


async def report_status(stats: IngestStats, interval: float = 10.0) -> None:
    """Log a status line every `interval` seconds until cancelled."""
    while True:
        await asyncio.sleep(interval)
        logger.info(stats.snapshot().status_line())
