"""Contract log -> canonical DomainEvent (BetPlaced / WinningsClaimed)."""

from __future__ import annotations

import re
from decimal import Decimal
from typing import Any

import structlog
from web3 import Web3

from predpoints.models import DomainEvent, EventKind
from predpoints.models.events import INT64_MAX

log = structlog.get_logger(__name__)

BET_PLACED_SIGNATURE = "BetPlaced(uint256,address,uint8,uint256)"
WINNINGS_CLAIMED_SIGNATURE = "WinningsClaimed(uint256,address,uint256)"

BET_PLACED_TOPIC = Web3.to_hex(Web3.keccak(text=BET_PLACED_SIGNATURE))
WINNINGS_CLAIMED_TOPIC = Web3.to_hex(Web3.keccak(text=WINNINGS_CLAIMED_SIGNATURE))

TOPIC_KINDS: dict[str, EventKind] = {
    BET_PLACED_TOPIC: EventKind.BET_PLACED,
    WINNINGS_CLAIMED_TOPIC: EventKind.WINNINGS_CLAIMED,
}

# USDC amounts carry 6 fraction digits
USDC_DECIMALS = 6
_USDC_SCALE = Decimal(10) ** USDC_DECIMALS

_ADDRESS_RE = re.compile(r"^0x[0-9a-f]{40}$")
_WORD = 64  # hex chars per ABI word


def usdc_to_decimal(raw: int) -> Decimal:
    """Convert a raw USDC amount to a Decimal number of dollars. Exact up to int64 inputs."""
    return Decimal(int(raw)) / _USDC_SCALE


def _parse_int(value: Any) -> int:
    if isinstance(value, bool):
        raise ValueError("bool is not an integer field")
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        value = value.strip()
        if value.startswith(("0x", "0X")):
            return int(value, 16)
        return int(value)
    raise TypeError(f"cannot parse int from {type(value).__name__}")


def _normalize_address(value: Any) -> str | None:
    """Accept a 20-byte address or a 32-byte left-padded topic word."""
    if not isinstance(value, str):
        return None
    s = value.strip().lower()
    if len(s) == 2 + _WORD and s.startswith("0x"):
        s = "0x" + s[-40:]
    return s if _ADDRESS_RE.match(s) else None


def _data_words(data: Any) -> list[str]:
    if not isinstance(data, str):
        return []
    hex_str = data[2:] if data.startswith("0x") else data
    return [hex_str[i : i + _WORD] for i in range(0, len(hex_str) - _WORD + 1, _WORD)]


def _extract_args(raw: dict[str, Any], kind: EventKind) -> dict[str, Any]:
    """Pull marketId/user/amount/choice from decoded args or from topics + data."""
    args = raw.get("args")
    if isinstance(args, dict):
        return {
            "marketId": args.get("marketId"),
            "user": args.get("user"),
            "amount": args.get("amount"),
            "choice": args.get("choice"),
        }
    topics = raw.get("topics") or []
    words = _data_words(raw.get("data"))
    out: dict[str, Any] = {
        "marketId": topics[1] if len(topics) > 1 else None,
        "user": topics[2] if len(topics) > 2 else None,
        "amount": None,
        "choice": None,
    }
    if kind is EventKind.BET_PLACED and len(words) >= 2:
        out["choice"] = int(words[0], 16)
        out["amount"] = int(words[1], 16)
    elif kind is EventKind.WINNINGS_CLAIMED and len(words) >= 1:
        out["amount"] = int(words[0], 16)
    return out


def _parse(raw: Any, kind: EventKind) -> DomainEvent | None:
    if not isinstance(raw, dict):
        log.warning("skip_malformed_log", kind=kind.value, reason="not a mapping")
        return None
    tx_hash = raw.get("transactionHash")
    try:
        args = _extract_args(raw, kind)
        wallet = _normalize_address(args["user"])
        if wallet is None or args["amount"] is None or args["marketId"] is None:
            log.warning("skip_malformed_log", kind=kind.value, tx_hash=tx_hash, reason="missing user, amount or market")
            return None
        # txHash and logIndex form the event_key
        if not tx_hash or raw.get("blockNumber") is None or raw.get("logIndex") is None:
            log.warning("skip_malformed_log", kind=kind.value, tx_hash=tx_hash, reason="missing tx hash, block or log index")
            return None
        raw_amount = _parse_int(args["amount"])
        if raw_amount > INT64_MAX:
            raise ValueError(f"amount {raw_amount} out of range")
        choice = args["choice"]
        return DomainEvent(
            kind=kind,
            wallet=wallet,
            market_id=_parse_int(args["marketId"]),
            amount=usdc_to_decimal(raw_amount),
            tx_hash=str(tx_hash).lower(),
            block_number=_parse_int(raw["blockNumber"]),
            log_index=_parse_int(raw["logIndex"]),
            choice=_parse_int(choice) if choice is not None else None,
        )
    except (TypeError, ValueError) as e:
        # pydantic.ValidationError subclasses ValueError
        log.warning("skip_malformed_log", kind=kind.value, tx_hash=tx_hash, reason=str(e))
        return None


def parse_bet_placed(raw: dict[str, Any]) -> DomainEvent | None:
    """Convert a BetPlaced log to a DomainEvent, or None if malformed."""
    return _parse(raw, EventKind.BET_PLACED)


def parse_winnings_claimed(raw: dict[str, Any]) -> DomainEvent | None:
    """Convert a WinningsClaimed log to a DomainEvent, or None if malformed."""
    return _parse(raw, EventKind.WINNINGS_CLAIMED)


def normalize_log(raw: dict[str, Any], kind: EventKind | None = None) -> DomainEvent | None:
    """
    Normalize a raw log. Kind is taken from the caller (the query that fetched it)
    or from topics[0]. Unknown event signatures are skipped, never raised.
    """
    if kind is None:
        topics = raw.get("topics") if isinstance(raw, dict) else None
        topic0 = str(topics[0]).lower() if topics else ""
        kind = TOPIC_KINDS.get(topic0)
        if kind is None:
            log.warning("skip_unknown_log", topic=topic0 or None)
            return None
    return _parse(raw, kind)
