"""Listener subcommand: start, status."""

from __future__ import annotations

import asyncio
import signal
import sys

import duckdb
import structlog
import typer

from predpoints.errors import StartupError
from predpoints.ingestion.chain.rpc import JsonRpcEventSource
from predpoints.processing.poller import PointsPoller
from predpoints.processing.processor import PointsProcessor
from predpoints.storage.aggregates import check_store, count_users
from predpoints.storage.cursor import list_cursors
from predpoints.storage.db import get_connection, init_schema
from predpoints.storage.ledger import ledger_stats

app = typer.Typer(help="Run the points listener and show its status")

log = structlog.get_logger(__name__)


@app.command("start")
def start(
    ctx: typer.Context,
    from_block: int = typer.Option(
        None, "--from-block", help="First block to scan when no cursor is stored (overrides config)"
    ),
    no_push: bool = typer.Option(False, "--no-push", help="Poll only; ignore chain.ws_url"),
) -> None:
    """Scan the contract for BetPlaced/WinningsClaimed logs and award points (Ctrl+C to stop)."""
    settings = ctx.obj["settings"]
    if not settings.rpc_url or not settings.contract_address:
        typer.echo("chain.rpc_url and chain.contract_address must be configured.", err=True)
        raise typer.Exit(1)
    try:
        conn = get_connection(settings.db_path)
        init_schema(conn)
        check_store(conn)
    except (duckdb.Error, StartupError, OSError) as e:
        log.error("startup_failed", error=str(e))
        typer.echo(f"Startup failed: {e}", err=True)
        raise typer.Exit(1)
    log.info("store_connected", db_path=settings.db_path)

    source = JsonRpcEventSource(
        settings.rpc_url,
        ws_url=None if no_push else settings.ws_url,
        timeout=settings.request_timeout_sec,
    )
    processor = PointsProcessor(
        conn,
        points_per_dollar=settings.points_per_dollar,
        win_multiplier=settings.win_multiplier,
    )
    poller = PointsPoller(
        source,
        processor,
        settings.contract_address,
        poll_interval_sec=settings.poll_interval_sec,
        max_window_blocks=settings.max_window_blocks,
        start_block=from_block if from_block is not None else settings.start_block,
    )
    stop_event = asyncio.Event()

    def shutdown() -> None:
        log.info("shutdown_requested")
        stop_event.set()

    loop = asyncio.new_event_loop()
    if sys.platform != "win32":
        loop.add_signal_handler(signal.SIGINT, shutdown)
        loop.add_signal_handler(signal.SIGTERM, shutdown)
    try:
        typer.echo(f"Watching contract {settings.contract_address} (Ctrl+C to stop)...")
        loop.run_until_complete(poller.run(stop_event=stop_event))
    except KeyboardInterrupt:
        pass
    finally:
        loop.run_until_complete(source.aclose())
        conn.close()
        loop.close()
    typer.echo("Stopped.")


@app.command("status")
def status(ctx: typer.Context) -> None:
    """Show cursor position and ledger statistics."""
    settings = ctx.obj["settings"]
    conn = get_connection(settings.db_path)
    init_schema(conn)
    try:
        cursors = list_cursors(conn)
        stats = ledger_stats(conn)
        if cursors:
            for c in cursors:
                typer.echo(f"Cursor {c['stream']}: block {c['last_processed_block']}")
        else:
            typer.echo("Cursor: not started")
        typer.echo(f"Users: {count_users(conn)}")
        typer.echo(f"Ledger entries: {stats['total_entries']} ({stats['total_points']} points)")
        for row in stats["by_source"]:
            typer.echo(f"  {row['source']:<12} {row['count']:>8} entries  {row['points']:>12} points")
    finally:
        conn.close()
