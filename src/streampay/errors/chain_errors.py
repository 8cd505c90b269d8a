"""JSON-RPC, transaction and indexer errors."""

from __future__ import annotations

from streampay.errors.stream_errors import StreamError


class RPCError(StreamError):
    """Error from the chain JSON-RPC endpoint."""

    def __init__(self, message: str, *, status_code: int = 502, rpc_code: int | None = None) -> None:
        super().__init__(message, status_code=status_code, code="rpc-error")
        self.rpc_code = rpc_code


class TransactionRevertedError(StreamError):
    """The createStream transaction was mined but reverted."""

    def __init__(self, tx_hash: str) -> None:
        super().__init__(
            f"transaction {tx_hash} reverted", status_code=422, code="transaction-reverted"
        )
        self.tx_hash = tx_hash


class DiscoveryError(StreamError):
    """Error from the stream indexer (GraphQL)."""

    def __init__(self, message: str, *, status_code: int = 502) -> None:
        super().__init__(message, status_code=status_code, code="discovery-error")
