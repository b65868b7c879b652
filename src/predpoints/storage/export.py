"""Export the points ledger to Parquet."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from duckdb import DuckDBPyConnection


def export_ledger_to_parquet(
    conn: DuckDBPyConnection,
    output_path: str | Path,
    wallet: str | None = None,
) -> int:
    """Export points_ledger to a Parquet file. Optional filter by wallet. Returns row count."""
    path = Path(output_path).resolve()
    path.parent.mkdir(parents=True, exist_ok=True)
    path_str = str(path).replace("'", "''")
    if wallet:
        address = wallet.lower()
        conn.execute(
            f"COPY (SELECT * FROM points_ledger WHERE wallet_address = ? ORDER BY id) TO '{path_str}' (FORMAT PARQUET)",
            [address],
        )
        count = conn.execute(
            "SELECT COUNT(*) FROM points_ledger WHERE wallet_address = ?", [address]
        ).fetchone()[0]
    else:
        conn.execute(f"COPY (SELECT * FROM points_ledger ORDER BY id) TO '{path_str}' (FORMAT PARQUET)")
        count = conn.execute("SELECT COUNT(*) FROM points_ledger").fetchone()[0]
    return count
