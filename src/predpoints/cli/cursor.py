"""Cursor subcommand: show, set."""

from __future__ import annotations

import typer

from predpoints.errors import CursorRegressionError
from predpoints.storage.cursor import load_cursor, save_cursor
from predpoints.storage.db import get_connection, init_schema

app = typer.Typer(help="Inspect or move the block cursor")


@app.command("show")
def show(ctx: typer.Context) -> None:
    """Show the last fully processed block for the configured contract."""
    settings = ctx.obj["settings"]
    conn = get_connection(settings.db_path)
    init_schema(conn)
    try:
        block = load_cursor(conn, settings.contract_address)
        if block is None:
            typer.echo("No cursor stored.")
        else:
            typer.echo(f"{settings.contract_address}: {block}")
    finally:
        conn.close()


@app.command("set")
def set_cursor(
    ctx: typer.Context,
    block: int = typer.Argument(..., help="Last processed block; scanning resumes at block + 1"),
    force: bool = typer.Option(False, "--force", help="Allow moving the cursor backwards (rescan)"),
) -> None:
    """Move the cursor. Rescanned ranges are safe: the ledger ignores already-recorded events."""
    settings = ctx.obj["settings"]
    if not settings.contract_address:
        typer.echo("chain.contract_address must be configured.", err=True)
        raise typer.Exit(1)
    conn = get_connection(settings.db_path)
    init_schema(conn)
    try:
        save_cursor(conn, settings.contract_address, block, force=force)
        typer.echo(f"Cursor set to {block}.")
    except CursorRegressionError as e:
        typer.echo(f"{e}. Use --force to rescan.", err=True)
        raise typer.Exit(1)
    finally:
        conn.close()
