"""eth_subscribe("logs") over WebSocket - connect, subscribe, receive, reconnect."""

from __future__ import annotations

import asyncio
import json
from typing import Any

import structlog
import websockets

from predpoints.ingestion.base import OnLogs

log = structlog.get_logger(__name__)


def _parse_message(raw: str | bytes) -> dict[str, Any] | None:
    try:
        msg = json.loads(raw)
    except (json.JSONDecodeError, TypeError):
        return None
    return msg if isinstance(msg, dict) else None


def subscription_log(msg: dict[str, Any]) -> dict[str, Any] | None:
    """Return the log carried by an eth_subscription notification, else None."""
    if msg.get("method") != "eth_subscription":
        return None
    params = msg.get("params")
    if not isinstance(params, dict):
        return None
    result = params.get("result")
    return result if isinstance(result, dict) else None


async def run_log_subscription(
    ws_url: str,
    address: str,
    topics: list[str],
    on_logs: OnLogs,
    *,
    reconnect_base_delay_sec: float = 1.0,
    reconnect_max_delay_sec: float = 60.0,
    stop_event: asyncio.Event | None = None,
) -> None:
    """
    Subscribe to contract logs matching any of topics and call on_logs([log]) per notification.
    Runs until stop_event is set. Reconnect with exponential backoff; resubscribe on each reconnect.
    Logs seen here are only a wake-up signal; the poller's window scan is authoritative.
    """
    stop = stop_event or asyncio.Event()
    delay = reconnect_base_delay_sec
    sub = {
        "jsonrpc": "2.0",
        "id": 1,
        "method": "eth_subscribe",
        # Nested list: OR across topic0 values
        "params": ["logs", {"address": address, "topics": [topics]}],
    }

    while not stop.is_set():
        try:
            async with websockets.connect(
                ws_url,
                ping_interval=20,
                ping_timeout=20,
                close_timeout=5,
            ) as ws:
                delay = reconnect_base_delay_sec
                await ws.send(json.dumps(sub))
                log.info("ws_subscribed", address=address, topics=len(topics))

                while not stop.is_set():
                    try:
                        raw = await asyncio.wait_for(ws.recv(), timeout=1.0)
                    except asyncio.TimeoutError:
                        continue
                    msg = _parse_message(raw)
                    if msg is None:
                        continue
                    if msg.get("error"):
                        log.warning("ws_subscribe_error", error=msg["error"])
                        break
                    entry = subscription_log(msg)
                    if entry is not None:
                        on_logs([entry])
        except asyncio.CancelledError:
            log.info("ws_cancelled")
            raise
        except Exception as e:
            log.warning("ws_error", error=str(e), delay=delay)
            try:
                await asyncio.wait_for(stop.wait(), timeout=delay)
            except asyncio.TimeoutError:
                pass
            delay = min(delay * 2, reconnect_max_delay_sec)
            continue
        if not stop.is_set():
            # Server rejected the subscription; back off before retrying.
            try:
                await asyncio.wait_for(stop.wait(), timeout=delay)
            except asyncio.TimeoutError:
                pass
            delay = min(delay * 2, reconnect_max_delay_sec)

    log.info("ws_subscription_stopped")
