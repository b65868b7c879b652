"""Per-wallet points aggregates and the ledger+aggregate write pair."""

from __future__ import annotations

import time
from typing import TYPE_CHECKING, Any

import duckdb
import structlog

from predpoints.errors import StartupError, StoreError
from predpoints.models import PointsAward, UserAggregate
from predpoints.storage.db import store_errors, transaction
from predpoints.storage.ledger import AppendResult, append_entry, sum_points_by_wallet

if TYPE_CHECKING:
    from duckdb import DuckDBPyConnection

log = structlog.get_logger(__name__)


def _short(wallet: str) -> str:
    return f"{wallet[:6]}...{wallet[-4:]}"


def check_store(conn: DuckDBPyConnection) -> None:
    """Startup probe. Raises StartupError if the store cannot be queried."""
    try:
        conn.execute("SELECT COUNT(*) FROM users").fetchone()
    except duckdb.Error as e:
        raise StartupError(f"store connection failed: {e}") from e


def ensure_user(conn: DuckDBPyConnection, wallet: str, now_ms: int | None = None) -> bool:
    """Create a zero-balance row if absent. Returns True if a row was created."""
    address = wallet.lower()
    with store_errors("ensure user"):
        row = conn.execute(
            """
            INSERT INTO users (wallet_address, total_points, last_bet_timestamp)
            VALUES (?, 0, ?)
            ON CONFLICT (wallet_address) DO NOTHING
            RETURNING wallet_address
            """,
            [address, now_ms or int(time.time() * 1000)],
        ).fetchone()
    if row is not None:
        log.info("user_created", wallet=_short(address))
        return True
    return False


def credit_points(conn: DuckDBPyConnection, wallet: str, delta: int, now_ms: int | None = None) -> int:
    """Read current total, write current + delta. Returns the new total.

    Plain read-modify-write: callers serialize credits per wallet (single worker).
    """
    address = wallet.lower()
    with store_errors("credit points"):
        row = conn.execute(
            "SELECT total_points FROM users WHERE wallet_address = ?", [address]
        ).fetchone()
        if row is None:
            raise StoreError(f"no aggregate row for {address}")
        new_total = int(row[0]) + delta
        conn.execute(
            "UPDATE users SET total_points = ?, last_bet_timestamp = ? WHERE wallet_address = ?",
            [new_total, now_ms or int(time.time() * 1000), address],
        )
    return new_total


def record_award(conn: DuckDBPyConnection, award: PointsAward, event_key: str) -> AppendResult:
    """Ledger append, then aggregate credit, in one transaction.

    A replayed event_key leaves both tables untouched.
    """
    now_ms = int(time.time() * 1000)
    with store_errors("record award"), transaction(conn):
        result = append_entry(conn, award, event_key, created_at=now_ms)
        if result.inserted:
            ensure_user(conn, award.wallet, now_ms)
            credit_points(conn, award.wallet, award.points, now_ms)
    if result.inserted:
        log.info(
            "points_awarded",
            wallet=_short(award.wallet),
            points=award.points,
            source=award.source.value,
            market_id=award.market_id,
        )
    else:
        log.debug("award_already_ledgered", event_key=event_key)
    return result


def get_user(conn: DuckDBPyConnection, wallet: str) -> UserAggregate | None:
    row = conn.execute(
        "SELECT wallet_address, total_points, last_bet_timestamp FROM users WHERE wallet_address = ?",
        [wallet.lower()],
    ).fetchone()
    if not row:
        return None
    return UserAggregate(wallet=row[0], total_points=row[1], last_activity=row[2])


def top_users(conn: DuckDBPyConnection, limit: int = 20) -> list[UserAggregate]:
    """Leaderboard: highest totals first."""
    rows = conn.execute(
        """
        SELECT wallet_address, total_points, last_bet_timestamp
        FROM users
        ORDER BY total_points DESC, wallet_address
        LIMIT ?
        """,
        [limit],
    ).fetchall()
    return [UserAggregate(wallet=r[0], total_points=r[1], last_activity=r[2]) for r in rows]


def count_users(conn: DuckDBPyConnection) -> int:
    return conn.execute("SELECT COUNT(*) FROM users").fetchone()[0]


def find_mismatches(conn: DuckDBPyConnection) -> list[dict[str, Any]]:
    """Wallets whose aggregate differs from the ledger sum (or has no aggregate row)."""
    ledger_totals = sum_points_by_wallet(conn)
    rows = conn.execute("SELECT wallet_address, total_points FROM users").fetchall()
    aggregates = {r[0]: int(r[1]) for r in rows}
    out = []
    for wallet in sorted(set(ledger_totals) | set(aggregates)):
        expected = ledger_totals.get(wallet, 0)
        actual = aggregates.get(wallet)
        if actual is None or actual != expected:
            out.append({"wallet": wallet, "aggregate": actual, "ledger": expected})
    return out


def rebuild_aggregates(conn: DuckDBPyConnection) -> int:
    """Reset every mismatched aggregate to its ledger sum. Returns wallets fixed."""
    mismatches = find_mismatches(conn)
    if not mismatches:
        return 0
    now_ms = int(time.time() * 1000)
    with store_errors("rebuild aggregates"), transaction(conn):
        for m in mismatches:
            if m["aggregate"] is None:
                conn.execute(
                    "INSERT INTO users (wallet_address, total_points, last_bet_timestamp) VALUES (?, ?, ?)",
                    [m["wallet"], m["ledger"], now_ms],
                )
            else:
                conn.execute(
                    "UPDATE users SET total_points = ? WHERE wallet_address = ?",
                    [m["ledger"], m["wallet"]],
                )
    log.info("aggregates_rebuilt", wallets=len(mismatches))
    return len(mismatches)
