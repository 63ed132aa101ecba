from __future__ import annotations

import asyncio
import gzip
import json
from datetime import datetime

import pytest

from ghaload.domain.models import Event
from ghaload.domain.timestamps import format_rfc3339
from ghaload.ports.archive import ArchiveError, ArchiveNotFound


def raw_event(event_id: int, created_at: str = "2015-01-01T00:15:00Z", type_: str = "PushEvent") -> dict:
    return {
        "id": str(event_id),
        "type": type_,
        "actor": {"id": 1000 + event_id, "login": f"user{event_id}", "url": f"https://api.github.com/users/user{event_id}"},
        "repo": {"id": 2000 + event_id, "name": f"user{event_id}/repo", "url": f"https://api.github.com/repos/user{event_id}/repo"},
        "payload": {"size": 1},
        "public": True,
        "created_at": created_at,
    }


def ndjson_gz(*objs: dict) -> bytes:
    body = "".join(json.dumps(o) + "\n" for o in objs)
    return gzip.compress(body.encode())


class FakeArchive:
    """In-memory archive: missing hours are 404s; `failures[hour]` server errors happen first."""

    def __init__(self, payloads: dict[datetime, bytes], failures: dict[datetime, int] | None = None) -> None:
        self.payloads = dict(payloads)
        self.failures = dict(failures or {})
        self.calls: list[datetime] = []
        self.closed = False

    async def fetch(self, hour: datetime) -> bytes:
        self.calls.append(hour)
        if self.failures.get(hour, 0) > 0:
            self.failures[hour] -= 1
            raise ArchiveError("invalid status code: code=502", outcome="server_error")
        if hour not in self.payloads:
            raise ArchiveNotFound(f"file not found: {hour.isoformat()}")
        return self.payloads[hour]

    async def aclose(self) -> None:
        self.closed = True


class MemoryStore:
    """EventStore fake keyed by id; `fail_ids` raise on upsert."""

    def __init__(self, events: list[Event] | None = None, fail_ids: set[int] | None = None) -> None:
        self.rows: dict[int, Event] = {e.id: e for e in events or []}
        self.fail_ids = set(fail_ids or ())
        self.order: list[int] = []
        self.cleared: list[datetime] = []

    async def migrate(self) -> None:
        pass

    async def upsert(self, event: Event) -> None:
        if event.id in self.fail_ids:
            raise RuntimeError(f"disk I/O error ({event.id})")
        if event.id not in self.rows:
            self.rows[event.id] = event
            self.order.append(event.id)

    async def clear_from(self, hour: datetime) -> int:
        self.cleared.append(hour)
        cutoff = format_rfc3339(hour)
        gone = [i for i, e in self.rows.items() if format_rfc3339(e.created_at) >= cutoff]
        for i in gone:
            del self.rows[i]
        return len(gone)

    async def max_created_at(self) -> datetime | None:
        if not self.rows:
            return None
        return max(e.created_at for e in self.rows.values())

    async def close(self) -> None:
        pass


class RecordingSleep:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
        await asyncio.sleep(0)


@pytest.fixture
def make_raw():
    return raw_event


@pytest.fixture
def make_payload():
    return ndjson_gz


@pytest.fixture
def fake_archive():
    return FakeArchive


@pytest.fixture
def memory_store():
    return MemoryStore


@pytest.fixture
def recording_sleep():
    return RecordingSleep()
