import asyncio, contextlib, logging, signal, sqlite3
import click
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel

from .adapters.archive_httpx import DEFAULT_BASE_URL
from .adapters.sqlite_store import SYNCHRONOUS_MODES
from .application.use_cases import DEFAULT_QUEUE_SIZE, IngestConfig, run_ingest

console = Console()


def _setup_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True, show_path=False)],
        force=True,
    )
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


async def _run(config: IngestConfig):
    # SIGTERM cancels the pipeline the same way Ctrl-C does
    task = asyncio.current_task()
    with contextlib.suppress(NotImplementedError):
        asyncio.get_running_loop().add_signal_handler(signal.SIGTERM, task.cancel)
    return await run_ingest(config)


@click.group()
def cli():
    """ghaload: replay GitHub Archive into SQLite as a steady write load."""


@cli.command("ingest")
@click.argument("dsn", envvar="GHA_DSN", required=False)
@click.option("--ingest-rate", type=click.IntRange(min=1), default=1, show_default=True,
              envvar="GHA_INGEST_RATE", help="Writes per second")
@click.option("--autocheckpoint", type=click.IntRange(min=0), default=1000, show_default=True,
              envvar="GHA_AUTOCHECKPOINT", help="PRAGMA wal_autocheckpoint (pages)")
@click.option("--synchronous", type=click.Choice(SYNCHRONOUS_MODES, case_sensitive=False),
              default="NORMAL", show_default=True, envvar="GHA_SYNCHRONOUS", help="PRAGMA synchronous")
@click.option("--base-url", default=DEFAULT_BASE_URL, show_default=True, envvar="GHA_BASE_URL",
              help="Archive location serving <YYYY>-<MM>-<DD>-<H>.json.gz")
@click.option("--retry-delay", type=click.FloatRange(min=0), default=60.0, show_default=True,
              envvar="GHA_RETRY_DELAY", help="Seconds to wait before retrying a failed hour")
@click.option("--status-interval", type=click.FloatRange(min=0, min_open=True), default=10.0,
              show_default=True, help="Seconds between status lines")
@click.option("--queue-size", type=click.IntRange(min=1), default=DEFAULT_QUEUE_SIZE, show_default=True,
              help="Events buffered between fetch and write")
@click.option("--metrics-port", type=click.IntRange(min=0, max=65535), default=7070, show_default=True,
              envvar="GHA_METRICS_PORT", help="Prometheus /metrics port (0 disables)")
@click.option("--max-hours", type=click.IntRange(min=1), default=None,
              help="Stop after replaying this many archive hours")
@click.option("--log-level", type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
              default="INFO", show_default=True, envvar="GHA_LOG_LEVEL")
def ingest_cmd(dsn, ingest_rate, autocheckpoint, synchronous, base_url, retry_delay,
               status_interval, queue_size, metrics_port, max_hours, log_level):
    """Replay archive hours into the SQLite database at DSN (or $GHA_DSN)."""
    if not dsn:
        raise click.UsageError("dsn required (argument or GHA_DSN)")

    _setup_logging(log_level)
    config = IngestConfig(
        dsn=dsn,
        ingest_rate=ingest_rate,
        autocheckpoint=autocheckpoint,
        synchronous=synchronous.upper(),
        base_url=base_url,
        retry_delay=retry_delay,
        status_interval=status_interval,
        queue_size=queue_size,
        max_hours=max_hours,
    )

    from .adapters.metrics_prometheus import serve_metrics
    try:
        serve_metrics(metrics_port)
    except OSError as e:
        raise click.ClickException(f"cannot serve metrics on :{metrics_port}: {e}")

    console.print(Panel.fit(
        f"[bold]dsn[/]={dsn}  [bold]rate[/]={ingest_rate}/s  [bold]archive[/]={base_url}",
        title="ghaload",
    ))

    try:
        res = asyncio.run(_run(config))
    except KeyboardInterrupt:
        console.print("[yellow]interrupted[/]")
        return
    except asyncio.CancelledError:
        console.print("[yellow]stopped[/]")
        return
    except (OSError, ValueError, sqlite3.Error) as e:
        raise click.ClickException(str(e))

    console.print(
        f"[bold]done[/]: "
        f"[green]writes[/]={res.writes}  "
        f"[red]dropped[/]={res.dropped}  "
        f"[yellow]fetch_failures[/]={res.fetch_failures}  "
        f"(hours={res.hours}, {res.start_hour.isoformat()} → {res.cursor.isoformat()})"
    )


if __name__ == "__main__":
    cli()
