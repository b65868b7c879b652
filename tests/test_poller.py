"""Cursor-driven poller: windows, cursor advancement, retry after failure."""

import asyncio

import pytest

from conftest import ALICE, BOB, CONTRACT, FakeChain, bet_log, win_log

from predpoints.errors import RpcError, StoreError
from predpoints.ingestion.normalize import BET_PLACED_TOPIC, WINNINGS_CLAIMED_TOPIC
from predpoints.processing.poller import PointsPoller, PollerState
from predpoints.processing.processor import PointsProcessor, ProcessOutcome
from predpoints.storage.aggregates import get_user
from predpoints.storage.cursor import load_cursor, save_cursor


class FlakyProcessor(PointsProcessor):
    """Fails the first n win handlings, after bets of the window were already ledgered."""

    def __init__(self, conn, failures: int = 1):
        super().__init__(conn)
        self.failures = failures

    def handle_win(self, event):
        if self.failures > 0:
            self.failures -= 1
            raise StoreError("record award failed: connection reset")
        return super().handle_win(event)


class SlowChain(FakeChain):
    """Yields to the event loop inside get_logs so a second scan can start mid-window."""

    async def get_logs(self, address, topic, from_block, to_block):
        await asyncio.sleep(0.01)
        return await super().get_logs(address, topic, from_block, to_block)


def _total(conn, wallet: str) -> int:
    user = get_user(conn, wallet)
    return user.total_points if user else 0


def test_cold_start_begins_at_chain_head(conn, chain):
    chain.head = 500
    chain.add(bet_log(ALICE, 1, "10", tx_hash="0xold", block=400))
    poller = PointsPoller(chain, PointsProcessor(conn), CONTRACT)

    assert asyncio.run(poller.scan_once()) is None
    assert poller.cursor == 500
    assert load_cursor(conn, CONTRACT) == 500
    assert get_user(conn, ALICE) is None


def test_start_block_and_persisted_cursor(conn, chain):
    chain.head = 30
    poller = PointsPoller(chain, PointsProcessor(conn), CONTRACT, start_block=10)
    assert asyncio.run(poller.initialize()) == 9

    save_cursor(conn, CONTRACT, 25)
    resumed = PointsPoller(chain, PointsProcessor(conn), CONTRACT, start_block=10)
    assert asyncio.run(resumed.initialize()) == 25


def test_scan_processes_window_and_advances_cursor(conn, chain):
    save_cursor(conn, CONTRACT, 9)
    chain.head = 20
    chain.add(
        bet_log(ALICE, 1, "12.50", tx_hash="0xb1", block=12),
        win_log(ALICE, 1, "25.00", tx_hash="0xw1", block=18),
        bet_log(BOB, 2, "1", tx_hash="0xb2", block=25),  # beyond head
    )
    poller = PointsPoller(chain, PointsProcessor(conn), CONTRACT)

    result = asyncio.run(poller.scan_once())
    assert (result.from_block, result.to_block) == (10, 20)
    assert result.count(ProcessOutcome.AWARDED) == 2
    assert poller.cursor == 20
    assert load_cursor(conn, CONTRACT) == 20
    assert _total(conn, ALICE) == 750
    assert get_user(conn, BOB) is None
    assert poller.state is PollerState.IDLE
    # Nothing new: no re-request of committed ranges
    calls = len(chain.calls)
    assert asyncio.run(poller.scan_once()) is None
    assert len(chain.calls) == calls


def test_fetch_failure_keeps_cursor(conn, chain):
    save_cursor(conn, CONTRACT, 0)
    chain.head = 5
    chain.add(bet_log(ALICE, 1, "1", tx_hash="0xb1", block=3))
    chain.fail_topics[WINNINGS_CLAIMED_TOPIC] = 1
    poller = PointsPoller(chain, PointsProcessor(conn), CONTRACT)

    with pytest.raises(RpcError):
        asyncio.run(poller.scan_once())
    assert load_cursor(conn, CONTRACT) == 0
    assert poller.state is PollerState.IDLE

    asyncio.run(poller.scan_once())
    assert load_cursor(conn, CONTRACT) == 5
    assert _total(conn, ALICE) == 10


def test_mid_window_failure_retries_whole_window_idempotently(conn, chain):
    save_cursor(conn, CONTRACT, 0)
    chain.head = 10
    chain.add(
        bet_log(ALICE, 1, "12.50", tx_hash="0xb1", block=2),
        bet_log(BOB, 1, "4", tx_hash="0xb2", block=3),
        win_log(ALICE, 1, "25", tx_hash="0xw1", block=9),
    )
    poller = PointsPoller(chain, FlakyProcessor(conn), CONTRACT)

    with pytest.raises(StoreError):
        asyncio.run(poller.scan_once())
    # Bets were ledgered before the failure; the cursor did not move
    assert load_cursor(conn, CONTRACT) == 0
    assert _total(conn, ALICE) == 125

    result = asyncio.run(poller.scan_once())
    assert result.count(ProcessOutcome.DUPLICATE) == 2
    assert result.count(ProcessOutcome.AWARDED) == 1
    assert load_cursor(conn, CONTRACT) == 10
    assert _total(conn, ALICE) == 750
    assert _total(conn, BOB) == 40


def test_windows_are_bounded(conn, chain):
    save_cursor(conn, CONTRACT, 0)
    chain.head = 25
    poller = PointsPoller(chain, PointsProcessor(conn), CONTRACT, max_window_blocks=10)

    first = asyncio.run(poller.scan_once())
    assert (first.from_block, first.to_block) == (1, 10)
    assert not poller.caught_up
    asyncio.run(poller.scan_once())
    third = asyncio.run(poller.scan_once())
    assert (third.from_block, third.to_block) == (21, 25)
    assert poller.caught_up
    assert {(f, t) for _, f, t in chain.calls} == {(1, 10), (11, 20), (21, 25)}


def test_run_catches_up_and_stops(conn, chain):
    save_cursor(conn, CONTRACT, 0)
    chain.head = 35
    chain.add(
        bet_log(ALICE, 1, "12.50", tx_hash="0xb1", block=5),
        win_log(ALICE, 1, "25", tx_hash="0xw1", block=31),
    )
    chain.fail_topics[BET_PLACED_TOPIC] = 1
    poller = PointsPoller(chain, PointsProcessor(conn), CONTRACT, poll_interval_sec=0.01, max_window_blocks=10)

    async def scenario():
        stop = asyncio.Event()
        task = asyncio.create_task(poller.run(stop))
        for _ in range(200):
            if poller.cursor == 35:
                break
            await asyncio.sleep(0.01)
        stop.set()
        await asyncio.wait_for(task, timeout=2)

    asyncio.run(scenario())
    assert poller.windows_failed == 1
    assert load_cursor(conn, CONTRACT) == 35
    assert _total(conn, ALICE) == 750


def test_notify_triggers_scan_before_interval(conn):
    chain = FakeChain(head=1)
    save_cursor(conn, CONTRACT, 1)
    poller = PointsPoller(chain, PointsProcessor(conn), CONTRACT, poll_interval_sec=60)

    async def scenario():
        stop = asyncio.Event()
        task = asyncio.create_task(poller.run(stop, subscribe=False))
        await asyncio.sleep(0.05)
        chain.head = 3
        chain.add(bet_log(ALICE, 1, "1", tx_hash="0xb1", block=3))
        poller.notify([{}])
        for _ in range(100):
            if poller.cursor == 3:
                break
            await asyncio.sleep(0.01)
        stop.set()
        await asyncio.wait_for(task, timeout=2)

    asyncio.run(scenario())
    assert load_cursor(conn, CONTRACT) == 3
    assert _total(conn, ALICE) == 10


def test_invalid_window_size():
    with pytest.raises(ValueError):
        PointsPoller(FakeChain(), PointsProcessor(None), CONTRACT, max_window_blocks=0)


def test_overlapping_scans_run_one_window(conn):
    chain = SlowChain(head=8)
    save_cursor(conn, CONTRACT, 0)
    chain.add(bet_log(ALICE, 1, "12.50", tx_hash="0xb1", block=4))
    poller = PointsPoller(chain, PointsProcessor(conn), CONTRACT)

    async def scenario():
        # an interval tick and a push notification landing together
        return await asyncio.gather(poller.scan_once(), poller.scan_once())

    first, second = asyncio.run(scenario())
    assert (first.from_block, first.to_block) == (1, 8)
    assert second is None
    assert chain.calls == [(BET_PLACED_TOPIC, 1, 8), (WINNINGS_CLAIMED_TOPIC, 1, 8)]
    assert poller.windows_processed == 1
    assert load_cursor(conn, CONTRACT) == 8
    assert _total(conn, ALICE) == 125


def test_oversized_market_id_does_not_stall_the_cursor(conn, chain):
    save_cursor(conn, CONTRACT, 0)
    chain.head = 6
    chain.add(
        bet_log(ALICE, 2**64, "5", tx_hash="0xhuge", block=2),
        bet_log(BOB, 1, "3", tx_hash="0xb1", block=3),
    )
    poller = PointsPoller(chain, PointsProcessor(conn), CONTRACT)

    result = asyncio.run(poller.scan_once())
    assert result.count(ProcessOutcome.SKIPPED) == 1
    assert result.count(ProcessOutcome.AWARDED) == 1
    assert load_cursor(conn, CONTRACT) == 6
    assert get_user(conn, ALICE) is None
    assert _total(conn, BOB) == 30
