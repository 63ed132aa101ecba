# ghaload/ports/storage.py
from __future__ import annotations

from datetime import datetime
from typing import Protocol

from ..domain.models import Event


class EventStore(Protocol):
    """Port for the transactional event store the pipeline writes into."""

    async def migrate(self) -> None:
        """Create tables and indexes if they do not exist (idempotent)."""

    async def upsert(self, event: Event) -> None:
        """Insert `event` in its own transaction; an existing id is left untouched."""

    async def clear_from(self, hour: datetime) -> int:
        """Atomically delete events with created_at >= `hour`; return rows removed."""

    async def max_created_at(self) -> datetime | None:
        """Return the newest stored created_at, or None when the store is empty."""

    async def close(self) -> None:
        """Close the underlying connection."""
