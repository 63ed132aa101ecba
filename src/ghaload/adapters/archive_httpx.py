from __future__ import annotations
import logging
from datetime import datetime, timezone
import httpx
from ..ports.archive import ArchiveError, ArchiveNotFound, ArchiveSource

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://data.gharchive.org"

def archive_filename(hour: datetime) -> str:
    """`2015-01-01-15.json.gz`: date zero-padded, hour not."""
    h = hour.astimezone(timezone.utc)
    return f"{h.year:04d}-{h.month:02d}-{h.day:02d}-{h.hour}.json.gz"

class HttpxArchive(ArchiveSource):
    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        timeout_s: float = 120,
        max_conn: int = 4,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.client = httpx.AsyncClient(
            http2=True,
            timeout=httpx.Timeout(timeout_s, connect=min(timeout_s, 20)),
            limits=httpx.Limits(max_connections=max_conn, max_keepalive_connections=max(1, max_conn//2)),
            follow_redirects=True,
            transport=transport,
        )

    def url_for(self, hour: datetime) -> str:
        return f"{self.base_url}/{archive_filename(hour)}"

    async def fetch(self, hour: datetime) -> bytes:
        url = self.url_for(hour)
        try:
            r = await self.client.get(url)
        except httpx.TransportError as e:
            raise ArchiveError(f"transport error: {type(e).__name__}: {e} url={url}",
                               outcome="transport_error", url=url) from e
        if r.status_code == 404:
            raise ArchiveNotFound(f"file not found: {url}", url=url)
        if not r.is_success:
            raise ArchiveError(f"invalid status code: code={r.status_code} url={url}",
                               outcome="server_error", url=url)
        body = r.content
        logger.debug("fetched %s (%d bytes)", url, len(body))
        return body

    async def aclose(self) -> None:
        await self.client.aclose()
