# ghaload/ports/archive.py
from __future__ import annotations

from datetime import datetime
from typing import Protocol

from ..domain.value_types import FetchOutcome


class ArchiveError(Exception):
    """A failed archive fetch, classified by `outcome`."""

    def __init__(self, message: str, *, outcome: FetchOutcome, url: str | None = None) -> None:
        super().__init__(message)
        self.outcome = outcome
        self.url = url


class ArchiveNotFound(ArchiveError):
    """The hour file does not exist (not yet published, or out of range)."""

    def __init__(self, message: str, *, url: str | None = None) -> None:
        super().__init__(message, outcome="not_found", url=url)


class ArchiveSource(Protocol):
    """Port defining the contract for an hourly event archive."""

    async def fetch(self, hour: datetime) -> bytes:
        """Return the full compressed payload for `hour`; raise ArchiveError otherwise."""

    async def aclose(self) -> None:
        """Release network resources."""
