from __future__ import annotations
import logging
from prometheus_client import Counter, start_http_server

logger = logging.getLogger(__name__)

WRITE_TX_TOTAL = Counter(
    "write_tx_total",
    "Count of write transactions.",
    namespace="gha",
)


def serve_metrics(port: int, addr: str = "0.0.0.0") -> bool:
    """Start the Prometheus exporter (/metrics) in a background thread. port=0 disables it."""
    if port <= 0:
        return False
    start_http_server(port, addr=addr)
    logger.info("metrics available via http://%s:%d/metrics", "localhost" if addr in ("0.0.0.0", "") else addr, port)
    return True
