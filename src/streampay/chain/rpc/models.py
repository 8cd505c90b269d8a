"""JSON-RPC data models — blocks and transaction receipts."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from streampay.chain.rpc.abi import decode_uint


@dataclass(frozen=True)
class RPCBlock:
    """Block header fields used for block estimation.

    Attributes:
        number: Block number.
        timestamp: Block timestamp (UTC).
        hash: Block hash (hex).
    """

    number: int
    timestamp: datetime
    hash: str = ""

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RPCBlock:
        """Create from an ``eth_getBlockByNumber`` result."""
        return cls(
            number=decode_uint(data.get("number", "0x0")),
            timestamp=datetime.fromtimestamp(decode_uint(data.get("timestamp", "0x0")), tz=UTC),
            hash=data.get("hash", "") or "",
        )


@dataclass(frozen=True)
class TransactionReceipt:
    """Mined transaction receipt.

    Attributes:
        tx_hash: Transaction hash.
        block_number: Block that included the transaction.
        succeeded: False when the transaction reverted.
    """

    tx_hash: str
    block_number: int
    succeeded: bool

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TransactionReceipt:
        """Create from an ``eth_getTransactionReceipt`` result."""
        return cls(
            tx_hash=data.get("transactionHash", ""),
            block_number=decode_uint(data.get("blockNumber", "0x0") or "0x0"),
            succeeded=decode_uint(data.get("status", "0x1") or "0x1") == 1,
        )
