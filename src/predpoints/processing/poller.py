"""Cursor-driven poller: scan bounded block windows, advance the cursor only on success."""

from __future__ import annotations

import asyncio
from enum import Enum
from typing import TYPE_CHECKING, Any

import structlog

from predpoints.errors import TransientError
from predpoints.ingestion.base import EventSource
from predpoints.ingestion.normalize import BET_PLACED_TOPIC, WINNINGS_CLAIMED_TOPIC
from predpoints.processing.processor import PointsProcessor, ProcessOutcome, WindowResult
from predpoints.storage.cursor import load_cursor, save_cursor

if TYPE_CHECKING:
    from duckdb import DuckDBPyConnection

log = structlog.get_logger(__name__)


class PollerState(str, Enum):
    IDLE = "idle"
    SCANNING = "scanning"


class PointsPoller:
    """
    Single worker over one contract. Each tick scans [cursor + 1, min(head, cursor + max_window_blocks)],
    processes bets then wins, and only then persists the cursor. A failed window leaves the cursor
    in place so the whole window is retried (at-least-once; the ledger dedupes replays).
    Interval ticks and push notifications share one loop, so scans never overlap.
    """

    def __init__(
        self,
        source: EventSource,
        processor: PointsProcessor,
        contract_address: str,
        *,
        poll_interval_sec: float = 5.0,
        max_window_blocks: int = 2000,
        start_block: int | None = None,
        cursor_conn: DuckDBPyConnection | None = None,
    ):
        if max_window_blocks < 1:
            raise ValueError("max_window_blocks must be >= 1")
        self.source = source
        self.processor = processor
        self.contract_address = contract_address.lower()
        self.poll_interval_sec = poll_interval_sec
        self.max_window_blocks = max_window_blocks
        self.start_block = start_block
        self.cursor_conn = cursor_conn if cursor_conn is not None else processor.conn
        self._cursor: int | None = None
        self._head: int | None = None
        self._state = PollerState.IDLE
        self._lock = asyncio.Lock()
        self._wake = asyncio.Event()
        self.windows_processed = 0
        self.windows_failed = 0

    @property
    def cursor(self) -> int | None:
        return self._cursor

    @property
    def state(self) -> PollerState:
        return self._state

    async def initialize(self) -> int:
        """Resume from the persisted cursor, else start_block - 1, else the current head."""
        restored = load_cursor(self.cursor_conn, self.contract_address)
        if restored is not None:
            self._cursor = restored
            log.info("cursor_restored", block=restored, contract=self.contract_address)
            return restored
        if self.start_block is not None:
            cursor = max(self.start_block - 1, 0)
            log.info("cursor_start_block", block=cursor, contract=self.contract_address)
        else:
            cursor = await self.source.get_block_number()
            log.info("cursor_cold_start", block=cursor, contract=self.contract_address)
        save_cursor(self.cursor_conn, self.contract_address, cursor)
        self._cursor = cursor
        return cursor

    async def scan_once(self) -> WindowResult | None:
        """Scan one window. None when there are no new blocks. Errors propagate; cursor unchanged."""
        async with self._lock:
            if self._cursor is None:
                await self.initialize()
            cursor = self._cursor
            head = await self.source.get_block_number()
            self._head = head
            if head <= cursor:
                return None
            from_block = cursor + 1
            to_block = min(head, cursor + self.max_window_blocks)
            self._state = PollerState.SCANNING
            log.debug("scan_window", from_block=from_block, to_block=to_block, head=head)
            try:
                bet_logs = await self.source.get_logs(self.contract_address, BET_PLACED_TOPIC, from_block, to_block)
                win_logs = await self.source.get_logs(
                    self.contract_address, WINNINGS_CLAIMED_TOPIC, from_block, to_block
                )
                result = self.processor.process_window(bet_logs, win_logs, from_block, to_block)
                save_cursor(self.cursor_conn, self.contract_address, to_block)
                self._cursor = to_block
            finally:
                self._state = PollerState.IDLE
            self.windows_processed += 1
            if result.bets or result.wins:
                log.info(
                    "window_processed",
                    from_block=from_block,
                    to_block=to_block,
                    bets=result.bets,
                    wins=result.wins,
                    awarded=result.count(ProcessOutcome.AWARDED),
                    duplicates=result.count(ProcessOutcome.DUPLICATE),
                    skipped=result.count(ProcessOutcome.SKIPPED),
                )
            return result

    @property
    def caught_up(self) -> bool:
        return self._cursor is not None and self._head is not None and self._cursor >= self._head

    def notify(self, logs: list[dict[str, Any]] | None = None) -> None:
        """Push path: request a scan. The scan itself runs on the worker loop."""
        self._wake.set()

    async def _wait_for_tick(self, stop: asyncio.Event) -> None:
        waiters = [asyncio.ensure_future(stop.wait()), asyncio.ensure_future(self._wake.wait())]
        try:
            await asyncio.wait(waiters, timeout=self.poll_interval_sec, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for w in waiters:
                w.cancel()
        self._wake.clear()

    async def _run_subscription(self, stop: asyncio.Event) -> None:
        try:
            await self.source.subscribe(
                self.contract_address,
                [BET_PLACED_TOPIC, WINNINGS_CLAIMED_TOPIC],
                self.notify,
                stop,
            )
        except asyncio.CancelledError:
            raise
        except Exception as e:
            # Polling continues without push
            log.warning("subscription_failed", error=str(e))

    async def run(self, stop_event: asyncio.Event | None = None, subscribe: bool = True) -> None:
        """Poll until stop_event is set. An in-flight window always completes before exit."""
        stop = stop_event or asyncio.Event()
        sub_task = None
        if subscribe and getattr(self.source, "supports_push", False):
            sub_task = asyncio.create_task(self._run_subscription(stop))
        log.info("poller_started", contract=self.contract_address, interval_sec=self.poll_interval_sec)
        try:
            while not stop.is_set():
                succeeded = False
                try:
                    await self.scan_once()
                    succeeded = True
                except TransientError as e:
                    self.windows_failed += 1
                    log.warning("window_failed", error=str(e), cursor=self._cursor)
                except Exception as e:
                    self.windows_failed += 1
                    log.error("window_failed", error=str(e), cursor=self._cursor, exc_info=True)
                if stop.is_set():
                    break
                if succeeded and not self.caught_up:
                    # Backlog beyond one window; keep going without waiting for a tick
                    continue
                await self._wait_for_tick(stop)
        finally:
            if sub_task is not None:
                sub_task.cancel()
                try:
                    await sub_task
                except asyncio.CancelledError:
                    pass
            log.info(
                "poller_stopped",
                cursor=self._cursor,
                windows=self.windows_processed,
                failed=self.windows_failed,
            )
