"""predpoints - loyalty points ledger fed by on-chain prediction market events."""

__version__ = "0.1.0"
