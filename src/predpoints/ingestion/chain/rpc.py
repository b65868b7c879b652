"""JSON-RPC event source over HTTP (eth_blockNumber, eth_getLogs)."""

from __future__ import annotations

import asyncio
import itertools
from typing import Any

import httpx
import structlog

from predpoints.errors import RpcError
from predpoints.ingestion.base import OnLogs, RawLog
from predpoints.ingestion.chain.ws import run_log_subscription

log = structlog.get_logger(__name__)


class JsonRpcEventSource:
    """EventSource backed by an Ethereum JSON-RPC endpoint. Optional ws_url enables push."""

    def __init__(
        self,
        rpc_url: str,
        ws_url: str | None = None,
        timeout: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ):
        if not rpc_url:
            raise ValueError("rpc_url is required")
        self.rpc_url = rpc_url
        self.ws_url = ws_url or None
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._ids = itertools.count(1)

    async def _call(self, method: str, params: list[Any]) -> Any:
        payload = {"jsonrpc": "2.0", "id": next(self._ids), "method": method, "params": params}
        try:
            resp = await self._client.post(self.rpc_url, json=payload)
            resp.raise_for_status()
            data = resp.json()
        except httpx.HTTPError as e:
            raise RpcError(f"{method}: {e}") from e
        except ValueError as e:
            raise RpcError(f"{method}: invalid JSON response") from e
        if not isinstance(data, dict):
            raise RpcError(f"{method}: unexpected response type {type(data).__name__}")
        if data.get("error"):
            err = data["error"]
            code = err.get("code") if isinstance(err, dict) else None
            message = err.get("message") if isinstance(err, dict) else str(err)
            raise RpcError(f"{method}: {message}", code=code)
        return data.get("result")

    async def get_block_number(self) -> int:
        result = await self._call("eth_blockNumber", [])
        try:
            return int(result, 16)
        except (TypeError, ValueError) as e:
            raise RpcError(f"eth_blockNumber: bad result {result!r}") from e

    async def get_logs(self, address: str, topic: str, from_block: int, to_block: int) -> list[RawLog]:
        result = await self._call(
            "eth_getLogs",
            [
                {
                    "address": address,
                    "topics": [topic],
                    "fromBlock": hex(from_block),
                    "toBlock": hex(to_block),
                }
            ],
        )
        if result is None:
            return []
        if not isinstance(result, list):
            raise RpcError(f"eth_getLogs: unexpected result type {type(result).__name__}")
        return result

    @property
    def supports_push(self) -> bool:
        return self.ws_url is not None

    async def subscribe(
        self,
        address: str,
        topics: list[str],
        on_logs: OnLogs,
        stop_event: asyncio.Event,
    ) -> None:
        """Run a WebSocket log subscription until stop_event is set."""
        if self.ws_url is None:
            raise RuntimeError("subscribe requires ws_url")
        await run_log_subscription(self.ws_url, address, topics, on_logs, stop_event=stop_event)

    async def aclose(self) -> None:
        await self._client.aclose()
