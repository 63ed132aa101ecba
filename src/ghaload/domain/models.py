from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime
from typing import Any
from .value_types import EventId, EventType

@dataclass(slots=True, frozen=True)
class Actor:
    id: int
    login: str
    url: str

@dataclass(slots=True, frozen=True)
class Repo:
    id: int
    name: str
    url: str

@dataclass(slots=True, frozen=True)
class Event:
    id: EventId
    type: EventType
    actor: Actor | None
    repo: Repo | None
    payload: Any            # opaque JSON, never persisted
    created_at: datetime    # tz-aware UTC

    @property
    def actor_id(self) -> int | None:
        return self.actor.id if self.actor is not None else None

    @property
    def repo_id(self) -> int | None:
        return self.repo.id if self.repo is not None else None
