"""DuckDB connection and schema init."""

from __future__ import annotations

from contextlib import contextmanager
from pathlib import Path
from typing import TYPE_CHECKING, Iterator

import duckdb

from predpoints.errors import StoreError

if TYPE_CHECKING:
    from duckdb import DuckDBPyConnection

SCHEMA_SQL = """
-- Sequence for ledger surrogate keys
CREATE SEQUENCE IF NOT EXISTS ledger_seq START 1;

-- Points ledger (append-only, source of truth)
CREATE TABLE IF NOT EXISTS points_ledger (
    id              BIGINT PRIMARY KEY DEFAULT nextval('ledger_seq'),
    wallet_address  VARCHAR NOT NULL,
    points_earned   BIGINT NOT NULL,
    source          VARCHAR NOT NULL,
    market_id       BIGINT,
    tx_hash         VARCHAR,
    event_key       VARCHAR UNIQUE,
    metadata        JSON,
    created_at      BIGINT NOT NULL
);

-- Per-wallet running totals (derived from points_ledger)
CREATE TABLE IF NOT EXISTS users (
    wallet_address      VARCHAR PRIMARY KEY,
    total_points        BIGINT NOT NULL DEFAULT 0,
    last_bet_timestamp  BIGINT
);

-- Last fully processed block per contract
CREATE TABLE IF NOT EXISTS sync_state (
    stream                  VARCHAR PRIMARY KEY,
    last_processed_block    BIGINT NOT NULL,
    updated_at              BIGINT NOT NULL
);
"""


def get_connection(db_path: str | Path, read_only: bool = False) -> DuckDBPyConnection:
    """Return a DuckDB connection. Caller must close or use as context manager.
    Use read_only=True for inspection commands while a listener holds the write lock."""
    if str(db_path) == ":memory:":
        return duckdb.connect(":memory:")
    path = Path(db_path)
    if not read_only:
        path.parent.mkdir(parents=True, exist_ok=True)
    return duckdb.connect(str(path), read_only=read_only)


def init_schema(conn: DuckDBPyConnection) -> None:
    """Create tables and sequences if they do not exist."""
    for stmt in SCHEMA_SQL.split(";"):
        stmt = stmt.strip()
        if stmt:
            try:
                conn.execute(stmt)
            except duckdb.Error as e:
                if "already exists" not in str(e).lower():
                    raise


@contextmanager
def store_errors(operation: str) -> Iterator[None]:
    """Re-raise storage engine errors as retryable StoreError."""
    try:
        yield
    except duckdb.Error as e:
        raise StoreError(f"{operation} failed: {e}") from e


@contextmanager
def transaction(conn: DuckDBPyConnection) -> Iterator[DuckDBPyConnection]:
    """BEGIN/COMMIT around the block; ROLLBACK and re-raise on any exception."""
    conn.begin()
    try:
        yield conn
    except BaseException:
        conn.rollback()
        raise
    conn.commit()
