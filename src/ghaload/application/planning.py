from __future__ import annotations
import logging
from datetime import datetime, timedelta, timezone
from ..domain.timestamps import truncate_to_hour
from ..ports.storage import EventStore

logger = logging.getLogger(__name__)

# earliest hour the archive replay starts from on an empty store
DEFAULT_START_HOUR = datetime(2015, 1, 1, tzinfo=timezone.utc)
HOUR = timedelta(hours=1)

def next_hour(hour: datetime) -> datetime:
    return truncate_to_hour(hour) + HOUR

async def resolve_start_hour(store: EventStore, default: datetime = DEFAULT_START_HOUR) -> datetime:
    """Hour of the newest stored event, or `default` for an empty store."""
    latest = await store.max_created_at()
    if latest is None:
        logger.info("store is empty, starting at %s", default.isoformat())
        return default
    start = truncate_to_hour(latest)
    logger.info("resuming at %s (latest stored event %s)", start.isoformat(), latest.isoformat())
    return start
