"""Event source protocol: anything that can report a chain head and return contract logs."""

from __future__ import annotations

from typing import Any, Callable, Protocol

RawLog = dict[str, Any]
OnLogs = Callable[[list[RawLog]], None]


class EventSource(Protocol):
    """Polling interface (eth_blockNumber / eth_getLogs semantics, inclusive ranges).

    Sources that can also push new logs set supports_push = True and implement
    subscribe(address, topics, on_logs, stop_event).
    """

    async def get_block_number(self) -> int: ...

    async def get_logs(
        self,
        address: str,
        topic: str,
        from_block: int,
        to_block: int,
    ) -> list[RawLog]: ...
