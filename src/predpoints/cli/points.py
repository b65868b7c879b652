"""Points subcommand: balance, history, top, verify, rebuild."""

from __future__ import annotations

import typer

from predpoints.storage.aggregates import find_mismatches, get_user, rebuild_aggregates, top_users
from predpoints.storage.db import get_connection, init_schema
from predpoints.storage.ledger import list_entries

app = typer.Typer(help="Wallet balances, history and aggregate maintenance")


@app.command("balance")
def balance(ctx: typer.Context, wallet: str = typer.Argument(..., help="Wallet address")) -> None:
    """Show a wallet's total points."""
    settings = ctx.obj["settings"]
    conn = get_connection(settings.db_path)
    init_schema(conn)
    try:
        user = get_user(conn, wallet)
        if user is None:
            typer.echo(f"{wallet.lower()}: no points yet")
            raise typer.Exit(1)
        typer.echo(f"{user.wallet}: {user.total_points} points")
    finally:
        conn.close()


@app.command("history")
def history(
    ctx: typer.Context,
    wallet: str = typer.Argument(..., help="Wallet address"),
    limit: int = typer.Option(20, "--limit", "-n", help="Max entries"),
) -> None:
    """List a wallet's ledger entries, newest first."""
    settings = ctx.obj["settings"]
    conn = get_connection(settings.db_path)
    init_schema(conn)
    try:
        entries = list_entries(conn, wallet=wallet, limit=limit)
        for e in entries:
            tx = (e.tx_hash or "")[:12]
            typer.echo(f"  #{e.id:<8} {e.source.value:<11} {e.points_earned:>8}  market {e.market_id}  {tx}")
        typer.echo(f"Total: {len(entries)} entries")
    finally:
        conn.close()


@app.command("top")
def top(
    ctx: typer.Context,
    n: int = typer.Option(20, "--n", "-n", help="Number of wallets"),
) -> None:
    """Leaderboard by total points."""
    settings = ctx.obj["settings"]
    conn = get_connection(settings.db_path)
    init_schema(conn)
    try:
        for rank, user in enumerate(top_users(conn, limit=n), start=1):
            typer.echo(f"  {rank:>3}. {user.wallet}  {user.total_points}")
    finally:
        conn.close()


@app.command("verify")
def verify(ctx: typer.Context) -> None:
    """Check every aggregate against its ledger sum. Exit 1 on mismatch."""
    settings = ctx.obj["settings"]
    conn = get_connection(settings.db_path)
    init_schema(conn)
    try:
        mismatches = find_mismatches(conn)
    finally:
        conn.close()
    if not mismatches:
        typer.echo("All aggregates match the ledger.")
        return
    for m in mismatches:
        typer.echo(f"  {m['wallet']}: aggregate={m['aggregate']} ledger={m['ledger']}")
    typer.echo(f"{len(mismatches)} mismatched wallets. Run: predpoints points rebuild")
    raise typer.Exit(1)


@app.command("rebuild")
def rebuild(ctx: typer.Context) -> None:
    """Recompute aggregates from the ledger (e.g. after a crash between ledger and aggregate writes)."""
    settings = ctx.obj["settings"]
    conn = get_connection(settings.db_path)
    init_schema(conn)
    try:
        fixed = rebuild_aggregates(conn)
        typer.echo(f"Rebuilt {fixed} wallet aggregates.")
    finally:
        conn.close()
