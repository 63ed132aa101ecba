from __future__ import annotations
import os, asyncio, logging, sqlite3, threading
from contextlib import contextmanager
from datetime import datetime
from typing import Iterator

from ..domain.models import Event
from ..domain.timestamps import format_rfc3339, parse_rfc3339
from ..ports.storage import EventStore

logger = logging.getLogger(__name__)

SYNCHRONOUS_MODES = ("OFF", "NORMAL", "FULL", "EXTRA")

_SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS events (
        id INTEGER PRIMARY KEY,
        "type" TEXT,
        actor_id INTEGER,
        repo_id INTEGER,
        created_at TEXT NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS events_actor_id_fkey ON events (actor_id)",
    "CREATE INDEX IF NOT EXISTS events_repo_id_fkey ON events (repo_id)",
    "CREATE INDEX IF NOT EXISTS events_created_at_key ON events (created_at)",
    # reserved for actor/repo normalization; not populated by the ingester
    """
    CREATE TABLE IF NOT EXISTS users (
        id INTEGER PRIMARY KEY,
        login TEXT NOT NULL,
        url TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS repos (
        id INTEGER PRIMARY KEY,
        name TEXT NOT NULL,
        url TEXT NOT NULL
    )
    """,
)

_INSERT_EVENT = """
    INSERT INTO events (id, "type", actor_id, repo_id, created_at)
    VALUES (?, ?, ?, ?, ?)
    ON CONFLICT (id) DO NOTHING
"""


class SQLiteEventStore(EventStore):
    """
    sqlite3-backed event store.
    Blocking calls run via asyncio.to_thread; one lock serialises every statement,
    so the producer's clear and the consumer's inserts never interleave mid-transaction.
    """
    def __init__(self, conn: sqlite3.Connection, path: str = ":memory:") -> None:
        self.path = path
        self.conn = conn
        self._lock = threading.Lock()

    @classmethod
    async def open(
        cls,
        path: str,
        *,
        autocheckpoint: int = 1000,
        synchronous: str = "NORMAL",
    ) -> "SQLiteEventStore":
        store = await asyncio.to_thread(cls._open_sync, path, autocheckpoint, synchronous)
        logger.info("opened %s (wal_autocheckpoint=%d synchronous=%s)", path, autocheckpoint, synchronous.upper())
        return store

    @classmethod
    def _open_sync(cls, path: str, autocheckpoint: int, synchronous: str) -> "SQLiteEventStore":
        mode = synchronous.upper()
        if mode not in SYNCHRONOUS_MODES:
            raise ValueError(f"invalid synchronous mode: {synchronous!r}")
        if path != ":memory:":
            os.makedirs(os.path.dirname(os.path.abspath(path)), mode=0o700, exist_ok=True)

        conn = sqlite3.connect(path, check_same_thread=False, isolation_level=None)
        store = cls(conn, path)
        try:
            conn.execute(f"PRAGMA wal_autocheckpoint = {int(autocheckpoint)}")
            store._migrate_sync()
            conn.execute("PRAGMA journal_mode = wal")
            conn.execute(f"PRAGMA synchronous = {mode}")
        except Exception:
            conn.close()
            raise
        return store

    # ── transactions ──────────────────────────────

    @contextmanager
    def _tx(self) -> Iterator[sqlite3.Connection]:
        with self._lock:
            self.conn.execute("BEGIN")
            try:
                yield self.conn
                self.conn.execute("COMMIT")
            except BaseException:
                if self.conn.in_transaction:
                    self.conn.execute("ROLLBACK")
                raise

    def _migrate_sync(self) -> None:
        with self._tx() as c:
            for stmt in _SCHEMA:
                c.execute(stmt)

    def _upsert_sync(self, event: Event) -> None:
        with self._tx() as c:
            c.execute(_INSERT_EVENT, (
                int(event.id),
                str(event.type),
                event.actor_id,
                event.repo_id,
                format_rfc3339(event.created_at),
            ))

    def _clear_from_sync(self, hour: datetime) -> int:
        with self._tx() as c:
            cur = c.execute("DELETE FROM events WHERE created_at >= ?", (format_rfc3339(hour),))
            return cur.rowcount

    def _max_created_at_sync(self) -> str | None:
        with self._lock:
            row = self.conn.execute("SELECT MAX(created_at) FROM events").fetchone()
        return row[0] if row else None

    def _count_sync(self) -> int:
        with self._lock:
            return self.conn.execute("SELECT COUNT(*) FROM events").fetchone()[0]

    # ── EventStore ────────────────────────────────

    async def migrate(self) -> None:
        await asyncio.to_thread(self._migrate_sync)

    async def upsert(self, event: Event) -> None:
        await asyncio.to_thread(self._upsert_sync, event)

    async def clear_from(self, hour: datetime) -> int:
        return await asyncio.to_thread(self._clear_from_sync, hour)

    async def max_created_at(self) -> datetime | None:
        raw = await asyncio.to_thread(self._max_created_at_sync)
        if not raw:
            return None
        return parse_rfc3339(raw)

    async def count(self) -> int:
        return await asyncio.to_thread(self._count_sync)

    async def close(self) -> None:
        def _close() -> None:
            with self._lock:
                self.conn.close()
        await asyncio.to_thread(_close)
