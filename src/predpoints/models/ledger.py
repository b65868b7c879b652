"""PointsAward, LedgerEntry, UserAggregate - points ledger records."""

from __future__ import annotations

from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class PointsSource(str, Enum):
    BET_VOLUME = "bet_volume"
    WIN_BONUS = "win_bonus"


class PointsAward(BaseModel):
    """Policy output: points to ledger for one event (not yet persisted)."""

    wallet: str
    points: int = Field(..., ge=0)
    source: PointsSource
    market_id: int
    tx_hash: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class LedgerEntry(BaseModel):
    """Persisted, append-only points_ledger row."""

    id: int
    wallet: str
    points_earned: int
    source: PointsSource
    market_id: int | None = None
    tx_hash: str | None = None
    event_key: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: int | None = None  # ms epoch

    @property
    def bet_amount(self) -> Decimal | None:
        """USDC amount of the bet recorded in metadata, if any."""
        raw = self.metadata.get("betAmount")
        if raw is None:
            return None
        try:
            return Decimal(str(raw))
        except InvalidOperation:
            return None


class UserAggregate(BaseModel):
    """Derived per-wallet running total. Always equals the ledger sum."""

    wallet: str
    total_points: int = Field(0, ge=0)
    last_activity: int | None = None  # ms epoch
