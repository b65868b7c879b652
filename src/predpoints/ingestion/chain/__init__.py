"""EVM JSON-RPC event source (HTTP polling + WebSocket push)."""
