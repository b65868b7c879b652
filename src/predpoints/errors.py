"""Error taxonomy for the points pipeline.

Transient errors abandon the current window; the cursor stays put and the next
poll tick retries. Malformed logs and policy misses are not errors at all.
"""

from __future__ import annotations


class PointsError(Exception):
    """Base class for predpoints errors."""


class TransientError(PointsError):
    """Infrastructure failure (network or store). Retried on the next tick."""


class RpcError(TransientError):
    """Event source request failed or returned a JSON-RPC error."""

    def __init__(self, message: str, code: int | None = None):
        super().__init__(message)
        self.code = code


class StoreError(TransientError):
    """Persistent store failure other than an idempotent duplicate."""


class StartupError(PointsError):
    """Fatal at process start (e.g. store unreachable)."""


class CursorRegressionError(PointsError):
    """Attempt to move the cursor backwards without operator force."""

    def __init__(self, stream: str, current: int, requested: int):
        super().__init__(
            f"cursor for {stream} is at {current}; refusing to move back to {requested}"
        )
        self.stream = stream
        self.current = current
        self.requested = requested
