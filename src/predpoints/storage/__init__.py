"""DuckDB persistence: points ledger, user aggregates, scan cursor."""
