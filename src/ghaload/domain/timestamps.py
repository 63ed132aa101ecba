from __future__ import annotations
from datetime import datetime, timezone

RFC3339_UTC = "%Y-%m-%dT%H:%M:%SZ"


def parse_rfc3339(s: str) -> datetime:
    """Parse an RFC3339 timestamp ("Z" or numeric offset) into an aware UTC datetime."""
    v = s.strip()
    if v[-1:] in ("Z", "z"):
        v = v[:-1] + "+00:00"
    dt = datetime.fromisoformat(v)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def format_rfc3339(dt: datetime) -> str:
    # second precision, always UTC; stored text must sort like the instants it encodes
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).strftime(RFC3339_UTC)


def truncate_to_hour(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).replace(minute=0, second=0, microsecond=0)
