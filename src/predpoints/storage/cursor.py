"""Durable scan cursor: last fully processed block per contract."""

from __future__ import annotations

import time
from typing import TYPE_CHECKING

from predpoints.errors import CursorRegressionError
from predpoints.storage.db import store_errors

if TYPE_CHECKING:
    from duckdb import DuckDBPyConnection


def load_cursor(conn: DuckDBPyConnection, stream: str) -> int | None:
    """Return last_processed_block for stream, or None if never saved."""
    with store_errors("load cursor"):
        row = conn.execute(
            "SELECT last_processed_block FROM sync_state WHERE stream = ?", [stream.lower()]
        ).fetchone()
    return int(row[0]) if row else None


def save_cursor(conn: DuckDBPyConnection, stream: str, block: int, *, force: bool = False) -> None:
    """Persist the cursor. Moving backwards requires force=True (operator reset)."""
    stream = stream.lower()
    current = load_cursor(conn, stream)
    if current is not None and block < current and not force:
        raise CursorRegressionError(stream, current, block)
    with store_errors("save cursor"):
        conn.execute(
            """
            INSERT INTO sync_state (stream, last_processed_block, updated_at)
            VALUES (?, ?, ?)
            ON CONFLICT (stream) DO UPDATE SET
                last_processed_block = excluded.last_processed_block,
                updated_at = excluded.updated_at
            """,
            [stream, block, int(time.time() * 1000)],
        )


def list_cursors(conn: DuckDBPyConnection) -> list[dict]:
    rows = conn.execute(
        "SELECT stream, last_processed_block, updated_at FROM sync_state ORDER BY stream"
    ).fetchall()
    return [dict(zip(["stream", "last_processed_block", "updated_at"], r)) for r in rows]
