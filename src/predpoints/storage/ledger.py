"""Points ledger append and look-back queries. Rows are never updated or deleted."""

from __future__ import annotations

import json
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from predpoints.models import LedgerEntry, PointsAward, PointsSource
from predpoints.storage.db import store_errors

if TYPE_CHECKING:
    from duckdb import DuckDBPyConnection

_COLUMNS = ["id", "wallet", "points_earned", "source", "market_id", "tx_hash", "event_key", "metadata", "created_at"]
_SELECT = """
    SELECT id, wallet_address, points_earned, source, market_id, tx_hash, event_key, metadata, created_at
    FROM points_ledger
"""


@dataclass
class AppendResult:
    """Outcome of an idempotent ledger insert. inserted=False means already ledgered."""

    entry_id: int | None
    inserted: bool


def _row_to_entry(row: tuple[Any, ...]) -> LedgerEntry:
    data = dict(zip(_COLUMNS, row))
    metadata = data["metadata"]
    if isinstance(metadata, str):
        metadata = json.loads(metadata) if metadata else {}
    data["metadata"] = metadata or {}
    data["source"] = PointsSource(data["source"])
    return LedgerEntry(**data)


def append_entry(
    conn: DuckDBPyConnection,
    award: PointsAward,
    event_key: str,
    created_at: int | None = None,
) -> AppendResult:
    """Insert one ledger row keyed by event_key. A replayed event_key is a no-op, not an error."""
    with store_errors("ledger append"):
        row = conn.execute(
            """
            INSERT INTO points_ledger (wallet_address, points_earned, source, market_id, tx_hash, event_key, metadata, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT (event_key) DO NOTHING
            RETURNING id
            """,
            [
                award.wallet.lower(),
                award.points,
                award.source.value,
                award.market_id,
                award.tx_hash,
                event_key,
                json.dumps(award.metadata),
                created_at or int(time.time() * 1000),
            ],
        ).fetchone()
    if row is None:
        return AppendResult(entry_id=None, inserted=False)
    return AppendResult(entry_id=int(row[0]), inserted=True)


def find_latest_bet_for_market(conn: DuckDBPyConnection, wallet: str, market_id: int) -> LedgerEntry | None:
    """Most recent bet_volume entry for (wallet, market_id), by id."""
    with store_errors("ledger lookup"):
        row = conn.execute(
            _SELECT
            + """
            WHERE wallet_address = ? AND market_id = ? AND source = ?
            ORDER BY id DESC
            LIMIT 1
            """,
            [wallet.lower(), market_id, PointsSource.BET_VOLUME.value],
        ).fetchone()
    return _row_to_entry(row) if row else None


def list_entries(conn: DuckDBPyConnection, wallet: str | None = None, limit: int = 50) -> list[LedgerEntry]:
    """Ledger entries, newest first. Optional wallet filter."""
    if wallet:
        rows = conn.execute(
            _SELECT + " WHERE wallet_address = ? ORDER BY id DESC LIMIT ?",
            [wallet.lower(), limit],
        ).fetchall()
    else:
        rows = conn.execute(_SELECT + " ORDER BY id DESC LIMIT ?", [limit]).fetchall()
    return [_row_to_entry(r) for r in rows]


def sum_points_by_wallet(conn: DuckDBPyConnection) -> dict[str, int]:
    """Ledger total per wallet."""
    rows = conn.execute(
        "SELECT wallet_address, CAST(SUM(points_earned) AS BIGINT) FROM points_ledger GROUP BY wallet_address"
    ).fetchall()
    return {r[0]: int(r[1]) for r in rows}


def ledger_stats(conn: DuckDBPyConnection) -> dict[str, Any]:
    """Return ledger statistics: entry count, points issued, count and points by source."""
    total, points = conn.execute(
        "SELECT COUNT(*), CAST(COALESCE(SUM(points_earned), 0) AS BIGINT) FROM points_ledger"
    ).fetchone()
    by_source = conn.execute(
        """
        SELECT source, COUNT(*) AS cnt, CAST(SUM(points_earned) AS BIGINT)
        FROM points_ledger GROUP BY source ORDER BY source
        """
    ).fetchall()
    wallets = conn.execute("SELECT COUNT(DISTINCT wallet_address) FROM points_ledger").fetchone()[0]
    return {
        "total_entries": total,
        "total_points": int(points),
        "wallets": wallets,
        "by_source": [{"source": r[0], "count": r[1], "points": int(r[2])} for r in by_source],
    }
