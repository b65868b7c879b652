"""Points policy: bet volume points and win bonus. Pure functions, Decimal math."""

from __future__ import annotations

from decimal import ROUND_FLOOR, Decimal

from predpoints.models import DomainEvent, EventKind, LedgerEntry, PointsAward, PointsSource

POINTS_PER_DOLLAR = 10  # 10 points per $1 USDC wagered
WIN_MULTIPLIER = 5  # win bonus = 5x the points of the original bet


def _floor(value: Decimal) -> int:
    return int(value.to_integral_value(rounding=ROUND_FLOOR))


def compute_bet_points(amount: Decimal, points_per_dollar: int = POINTS_PER_DOLLAR) -> int:
    """floor(amount * 10)."""
    return _floor(Decimal(amount) * points_per_dollar)


def compute_win_bonus(
    original_bet_amount: Decimal,
    points_per_dollar: int = POINTS_PER_DOLLAR,
    win_multiplier: int = WIN_MULTIPLIER,
) -> int:
    """floor(original_bet_amount * 10 * 5)."""
    return _floor(Decimal(original_bet_amount) * points_per_dollar * win_multiplier)


def bet_award(event: DomainEvent, points_per_dollar: int = POINTS_PER_DOLLAR) -> PointsAward | None:
    """Award for a BetPlaced event. None for a zero-amount bet.

    Sub-point bets are still ledgered (0 points) since their amount seeds the win bonus.
    """
    if event.kind is not EventKind.BET_PLACED:
        raise ValueError(f"expected BetPlaced, got {event.kind.value}")
    if event.amount == 0:
        return None
    return PointsAward(
        wallet=event.wallet,
        points=compute_bet_points(event.amount, points_per_dollar),
        source=PointsSource.BET_VOLUME,
        market_id=event.market_id,
        tx_hash=event.tx_hash,
        metadata={
            "marketId": event.market_id,
            "betAmount": str(event.amount),
            "choice": event.choice,
            "txHash": event.tx_hash,
            "blockNumber": event.block_number,
        },
    )


def win_award(
    event: DomainEvent,
    prior_bet: LedgerEntry | None,
    points_per_dollar: int = POINTS_PER_DOLLAR,
    win_multiplier: int = WIN_MULTIPLIER,
) -> PointsAward | None:
    """Award for a WinningsClaimed event.

    None when the payout is zero (a loss) or when no bet_volume entry exists for
    the same wallet and market. The bonus is sized on the bet, not the payout.
    """
    if event.kind is not EventKind.WINNINGS_CLAIMED:
        raise ValueError(f"expected WinningsClaimed, got {event.kind.value}")
    if event.amount == 0 or prior_bet is None:
        return None
    bet_amount = prior_bet.bet_amount
    if not bet_amount:
        return None
    return PointsAward(
        wallet=event.wallet,
        points=compute_win_bonus(bet_amount, points_per_dollar, win_multiplier),
        source=PointsSource.WIN_BONUS,
        market_id=event.market_id,
        tx_hash=event.tx_hash,
        metadata={
            "marketId": event.market_id,
            "payout": str(event.amount),
            "betAmount": str(bet_amount),
            "betEntryId": prior_bet.id,
            "txHash": event.tx_hash,
            "blockNumber": event.block_number,
        },
    )
