from __future__ import annotations
from typing import NewType, Literal

EventId   = NewType("EventId", int)     # archive-wide unique, parsed from a string
EventType = NewType("EventType", str)   # PushEvent, WatchEvent, ...
FetchOutcome = Literal["not_found", "server_error", "transport_error"]
