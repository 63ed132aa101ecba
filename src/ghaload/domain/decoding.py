from __future__ import annotations

import gzip
import io
import json
import zlib
from typing import Any, Iterator, Mapping

from ghaload.domain.models import Actor, Event, Repo
from ghaload.domain.timestamps import parse_rfc3339
from ghaload.domain.value_types import EventId, EventType


class DecodeError(Exception):
    """Raised when an archive payload cannot be decompressed or a record is malformed."""


# ---------- record helpers ---------------------------------------------------

def _int_field(v: Any, name: str) -> int:
    """Archive ids arrive as JSON strings ("2489651045") or plain ints."""
    if isinstance(v, bool) or v is None:
        raise ValueError(f"{name}: expected integer, got {v!r}")
    if isinstance(v, int):
        return v
    return int(str(v).strip())

def _actor(raw: Any) -> Actor | None:
    # an actor without an id carries nothing we persist
    if raw is None or raw.get("id") is None:
        return None
    return Actor(
        id=_int_field(raw.get("id"), "actor.id"),
        login=str(raw.get("login") or ""),
        url=str(raw.get("url") or ""),
    )

def _repo(raw: Any) -> Repo | None:
    if raw is None or raw.get("id") is None:
        return None
    return Repo(
        id=_int_field(raw.get("id"), "repo.id"),
        name=str(raw.get("name") or ""),
        url=str(raw.get("url") or ""),
    )


def parse_event(obj: Mapping[str, Any]) -> Event:
    """Build an Event from one decoded archive object.

    Required: id, type, created_at. actor/repo are optional; payload is kept as-is.
    """
    if not isinstance(obj, Mapping):
        raise DecodeError(f"expected JSON object, got {type(obj).__name__}")
    try:
        return Event(
            id=EventId(_int_field(obj["id"], "id")),
            type=EventType(str(obj["type"])),
            actor=_actor(obj.get("actor")),
            repo=_repo(obj.get("repo")),
            payload=obj.get("payload"),
            created_at=parse_rfc3339(str(obj["created_at"])),
        )
    except KeyError as e:
        raise DecodeError(f"missing field {e.args[0]!r}") from e
    except (TypeError, ValueError, AttributeError) as e:
        raise DecodeError(f"invalid record: {e}") from e


# ---------- stream -----------------------------------------------------------

def decode_events(payload: bytes) -> Iterator[Event]:
    """Lazily gunzip `payload` and yield one Event per NDJSON line.

    Not restartable. Errors abort the stream with DecodeError at the failing
    line; events already yielded stay with the caller. Blank lines and a final
    line without a newline are fine.
    """
    if not payload:
        raise DecodeError("empty payload")

    lineno = 0
    with gzip.GzipFile(fileobj=io.BytesIO(payload), mode="rb") as gz:
        while True:
            try:
                line = gz.readline()
            except (OSError, EOFError, zlib.error) as e:
                raise DecodeError(f"decompress failed after line {lineno}: {e}") from e
            if not line:
                return
            lineno += 1
            if not line.strip():
                continue
            try:
                obj = json.loads(line)
            except ValueError as e:
                raise DecodeError(f"line {lineno}: invalid JSON: {e}") from e
            try:
                ev = parse_event(obj)
            except DecodeError as e:
                raise DecodeError(f"line {lineno}: {e}") from e
            yield ev
