"""Domain events -> points ledger + aggregates, strictly sequential."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

import structlog

from predpoints.ingestion.normalize import normalize_log
from predpoints.models import DomainEvent, EventKind
from predpoints.points.policy import POINTS_PER_DOLLAR, WIN_MULTIPLIER, bet_award, win_award
from predpoints.storage.aggregates import record_award
from predpoints.storage.ledger import find_latest_bet_for_market

if TYPE_CHECKING:
    from duckdb import DuckDBPyConnection

log = structlog.get_logger(__name__)


class ProcessOutcome(str, Enum):
    AWARDED = "awarded"
    DUPLICATE = "duplicate"  # already ledgered (replayed window)
    NO_AWARD = "no_award"  # zero amount, or win without a prior bet
    SKIPPED = "skipped"  # malformed log


@dataclass
class WindowResult:
    """Counts for one processed block window."""

    from_block: int = 0
    to_block: int = 0
    bets: int = 0
    wins: int = 0
    outcomes: dict[str, int] = field(default_factory=lambda: {o.value: 0 for o in ProcessOutcome})

    def record(self, outcome: ProcessOutcome) -> None:
        self.outcomes[outcome.value] += 1

    def count(self, outcome: ProcessOutcome) -> int:
        return self.outcomes[outcome.value]


def _log_order(raw: dict[str, Any]) -> tuple[int, int]:
    """Sort key (blockNumber, logIndex); malformed values sort first and get skipped later."""

    def _int(v: Any) -> int:
        try:
            return int(v, 16) if isinstance(v, str) and v.startswith("0x") else int(v)
        except (TypeError, ValueError):
            return -1

    if not isinstance(raw, dict):
        return (-1, -1)
    return (_int(raw.get("blockNumber")), _int(raw.get("logIndex")))


class PointsProcessor:
    """Applies the points policy to events and records awards. One instance per worker."""

    def __init__(
        self,
        conn: DuckDBPyConnection,
        points_per_dollar: int = POINTS_PER_DOLLAR,
        win_multiplier: int = WIN_MULTIPLIER,
    ):
        self.conn = conn
        self.points_per_dollar = points_per_dollar
        self.win_multiplier = win_multiplier

    def handle_bet(self, event: DomainEvent) -> ProcessOutcome:
        award = bet_award(event, self.points_per_dollar)
        if award is None:
            log.debug("zero_bet", market_id=event.market_id, tx_hash=event.tx_hash)
            return ProcessOutcome.NO_AWARD
        log.info(
            "bet_detected",
            market_id=event.market_id,
            amount=str(event.amount),
            points=award.points,
            block=event.block_number,
        )
        result = record_award(self.conn, award, event.event_key)
        return ProcessOutcome.AWARDED if result.inserted else ProcessOutcome.DUPLICATE

    def handle_win(self, event: DomainEvent) -> ProcessOutcome:
        if event.amount == 0:
            # Zero payout: the claim settled a loss
            return ProcessOutcome.NO_AWARD
        prior_bet = find_latest_bet_for_market(self.conn, event.wallet, event.market_id)
        award = win_award(event, prior_bet, self.points_per_dollar, self.win_multiplier)
        if award is None:
            log.debug("win_without_bet", market_id=event.market_id, tx_hash=event.tx_hash)
            return ProcessOutcome.NO_AWARD
        log.info(
            "win_detected",
            market_id=event.market_id,
            payout=str(event.amount),
            bonus=award.points,
        )
        result = record_award(self.conn, award, event.event_key)
        return ProcessOutcome.AWARDED if result.inserted else ProcessOutcome.DUPLICATE

    def handle(self, event: DomainEvent) -> ProcessOutcome:
        if event.kind is EventKind.BET_PLACED:
            return self.handle_bet(event)
        return self.handle_win(event)

    def process_log(self, raw: dict[str, Any], kind: EventKind | None = None) -> ProcessOutcome:
        """Normalize then handle. Malformed logs are skipped, never raised."""
        event = normalize_log(raw, kind)
        if event is None:
            return ProcessOutcome.SKIPPED
        return self.handle(event)

    def process_window(
        self,
        bet_logs: list[dict[str, Any]],
        win_logs: list[dict[str, Any]],
        from_block: int = 0,
        to_block: int = 0,
    ) -> WindowResult:
        """
        Process every bet before any win (a win's bonus reads its bet's ledger row),
        one log at a time. Store errors propagate so the caller can retry the window.
        """
        result = WindowResult(from_block=from_block, to_block=to_block, bets=len(bet_logs), wins=len(win_logs))
        for raw in sorted(bet_logs, key=_log_order):
            result.record(self.process_log(raw, EventKind.BET_PLACED))
        for raw in sorted(win_logs, key=_log_order):
            result.record(self.process_log(raw, EventKind.WINNINGS_CLAIMED))
        return result
