"""DomainEvent - canonical on-chain market event."""

from __future__ import annotations

from decimal import Decimal
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

# Largest value a BIGINT column holds
INT64_MAX = 2**63 - 1


class EventKind(str, Enum):
    """Contract events consumed by the points pipeline."""

    BET_PLACED = "BetPlaced"
    WINNINGS_CLAIMED = "WinningsClaimed"


class DomainEvent(BaseModel):
    """One normalized contract log. Built once per raw log, never mutated."""

    model_config = ConfigDict(frozen=True)

    kind: EventKind
    wallet: str = Field(..., min_length=1)  # lower-cased 0x address
    market_id: int = Field(..., ge=0, le=INT64_MAX)
    amount: Decimal = Field(..., ge=0, description="USDC, 6 fraction digits")
    tx_hash: str = Field(..., min_length=1)
    block_number: int = Field(..., ge=0, le=INT64_MAX)
    log_index: int = Field(..., ge=0, le=INT64_MAX)
    choice: int | None = None  # BetPlaced only

    @property
    def event_key(self) -> str:
        """Identity of the logical event across replays."""
        return f"{self.tx_hash}:{self.log_index}"
