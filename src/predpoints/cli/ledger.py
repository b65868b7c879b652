"""Ledger subcommand: export."""

from __future__ import annotations

import typer

from predpoints.storage.db import get_connection, init_schema
from predpoints.storage.export import export_ledger_to_parquet

app = typer.Typer(help="Points ledger export")


@app.command("export")
def export(
    ctx: typer.Context,
    wallet: str | None = typer.Option(None, "--wallet", "-w", help="Filter by wallet"),
    output: str = typer.Option("ledger.parquet", "--output", "-o", help="Output path"),
) -> None:
    """Export ledger entries to Parquet."""
    settings = ctx.obj["settings"]
    conn = get_connection(settings.db_path)
    init_schema(conn)
    try:
        count = export_ledger_to_parquet(conn, output, wallet=wallet)
        typer.echo(f"Exported {count} entries to {output}")
    finally:
        conn.close()
