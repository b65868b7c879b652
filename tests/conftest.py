"""Shared fixtures: temporary DuckDB, raw log builders, in-memory chain."""

from __future__ import annotations

from decimal import Decimal
from typing import Any

import pytest

from predpoints.errors import RpcError
from predpoints.ingestion.normalize import BET_PLACED_TOPIC, WINNINGS_CLAIMED_TOPIC
from predpoints.storage.db import get_connection, init_schema

CONTRACT = "0x" + "c0" * 20
ALICE = "0x" + "a1" * 20
BOB = "0x" + "b2" * 20


def _word(value: int) -> str:
    return f"{value:064x}"


def _raw_usdc(amount: str) -> int:
    return int(Decimal(amount) * 10**6)


def bet_log(
    wallet: str,
    market_id: int,
    amount: str,
    *,
    tx_hash: str,
    block: int = 1,
    log_index: int = 0,
    choice: int = 1,
) -> dict[str, Any]:
    """BetPlaced log as returned by eth_getLogs."""
    return {
        "address": CONTRACT,
        "topics": [BET_PLACED_TOPIC, "0x" + _word(market_id), "0x" + "0" * 24 + wallet[2:].lower()],
        "data": "0x" + _word(choice) + _word(_raw_usdc(amount)),
        "blockNumber": hex(block),
        "transactionHash": tx_hash,
        "logIndex": hex(log_index),
    }


def win_log(
    wallet: str,
    market_id: int,
    payout: str,
    *,
    tx_hash: str,
    block: int = 1,
    log_index: int = 0,
) -> dict[str, Any]:
    """WinningsClaimed log as returned by eth_getLogs."""
    return {
        "address": CONTRACT,
        "topics": [WINNINGS_CLAIMED_TOPIC, "0x" + _word(market_id), "0x" + "0" * 24 + wallet[2:].lower()],
        "data": "0x" + _word(_raw_usdc(payout)),
        "blockNumber": hex(block),
        "transactionHash": tx_hash,
        "logIndex": hex(log_index),
    }


class FakeChain:
    """In-memory EventSource. fail_topics[topic] = n makes the next n get_logs calls for topic fail."""

    def __init__(self, head: int = 0):
        self.head = head
        self.logs: list[dict[str, Any]] = []
        self.fail_topics: dict[str, int] = {}
        self.calls: list[tuple[str, int, int]] = []

    def add(self, *logs: dict[str, Any]) -> None:
        self.logs.extend(logs)

    async def get_block_number(self) -> int:
        return self.head

    async def get_logs(self, address: str, topic: str, from_block: int, to_block: int) -> list[dict[str, Any]]:
        self.calls.append((topic, from_block, to_block))
        if self.fail_topics.get(topic, 0) > 0:
            self.fail_topics[topic] -= 1
            raise RpcError("eth_getLogs: upstream timeout")
        return [
            entry
            for entry in self.logs
            if entry["topics"][0] == topic and from_block <= int(entry["blockNumber"], 16) <= to_block
        ]


@pytest.fixture
def conn(tmp_path):
    c = get_connection(tmp_path / "points.duckdb")
    init_schema(c)
    yield c
    c.close()


@pytest.fixture
def chain():
    return FakeChain()
