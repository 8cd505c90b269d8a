"""JSON-RPC HTTP client — blocks, gas price, ERC-20 reads, createStream.

Provides an async HTTP client for an Ethereum node:
- eth_blockNumber / eth_getBlockByNumber — chain reference for block estimation
- eth_gasPrice — current gas price
- eth_call — ERC-20 ``decimals``, ``balanceOf``, ``allowance``
- eth_sendTransaction — ``createStream`` from the node-managed sender account
- eth_getTransactionReceipt — wait until the transaction is mined
"""

from __future__ import annotations

import asyncio
import itertools
from typing import TYPE_CHECKING, Any

import httpx

from streampay.chain.rpc.abi import (
    ALLOWANCE_SIGNATURE,
    BALANCE_OF_SIGNATURE,
    DECIMALS_SIGNATURE,
    decode_uint,
    encode_address,
    encode_call,
    encode_create_stream,
)
from streampay.chain.rpc.models import RPCBlock, TransactionReceipt
from streampay.engine.blocks import ChainReference
from streampay.errors.chain_errors import RPCError, TransactionRevertedError

if TYPE_CHECKING:
    from streampay.config.settings import ChainConfig
    from streampay.engine.models.params import CreateStreamParams


class RPCService:
    """Async JSON-RPC client for an Ethereum node.

    Usage::

        rpc = RPCService(config)
        await rpc.connect()
        try:
            reference = await rpc.latest_reference()
        finally:
            await rpc.close()
    """

    def __init__(self, config: ChainConfig) -> None:
        """Initialize the RPC service.

        Args:
            config: Chain configuration (rpc url, average block time, contract).
        """
        self._config = config
        self._client: httpx.AsyncClient | None = None
        self._ids = itertools.count(1)

    async def connect(self) -> None:  # noqa: ASYNC910
        """Create the underlying HTTP client."""
        self._client = httpx.AsyncClient(
            base_url=self._config.rpc_url,
            headers={"Content-Type": "application/json"},
            timeout=30.0,
        )

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    @property
    def is_connected(self) -> bool:
        """Check if the HTTP client is active."""
        return self._client is not None

    # ------------------------------------------------------------------
    # Chain reference
    # ------------------------------------------------------------------

    async def block_number(self) -> int:
        """Number of the latest block."""
        return decode_uint(await self._call("eth_blockNumber", []))

    async def get_block(self, block: str | int = "latest") -> RPCBlock:
        """Fetch a block header by number or tag.

        Raises:
            RPCError: If the block does not exist or the call fails.
        """
        tag = hex(block) if isinstance(block, int) else block
        result = await self._call("eth_getBlockByNumber", [tag, False])
        if not result:
            raise RPCError(f"block {tag} not found", status_code=404)
        return RPCBlock.from_dict(result)

    async def latest_reference(self) -> ChainReference:
        """Latest block number and timestamp with the configured block time."""
        block = await self.get_block("latest")
        return ChainReference(
            block_number=block.number,
            timestamp=block.timestamp,
            average_seconds_per_block=self._config.average_block_time,
        )

    async def gas_price(self) -> int:
        """Current gas price in wei."""
        return decode_uint(await self._call("eth_gasPrice", []))

    # ------------------------------------------------------------------
    # ERC-20 reads
    # ------------------------------------------------------------------

    async def decimals(self, token: str) -> int:
        return decode_uint(await self._eth_call(token, encode_call(DECIMALS_SIGNATURE)))

    async def balance_of(self, token: str, account: str) -> int:
        data = encode_call(BALANCE_OF_SIGNATURE, encode_address(account))
        return decode_uint(await self._eth_call(token, data))

    async def allowance(self, token: str, owner: str, spender: str) -> int:
        data = encode_call(ALLOWANCE_SIGNATURE, encode_address(owner), encode_address(spender))
        return decode_uint(await self._eth_call(token, data))

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    async def send_create_stream(self, params: CreateStreamParams, gas_price: int) -> str:
        """Send ``createStream`` to the stream contract and return the tx hash.

        Raises:
            RPCError: If no stream contract is configured or the node rejects the call.
        """
        if not self._config.stream_contract:
            raise RPCError("stream contract address not configured", status_code=500)
        tx = {
            "from": params.sender,
            "to": self._config.stream_contract,
            "data": encode_create_stream(params),
            "gasPrice": hex(gas_price),
        }
        return await self._call("eth_sendTransaction", [tx])

    async def get_receipt(self, tx_hash: str) -> TransactionReceipt | None:
        """Receipt of *tx_hash*, or None while it is not mined."""
        result = await self._call("eth_getTransactionReceipt", [tx_hash])
        return TransactionReceipt.from_dict(result) if result else None

    async def wait_for_receipt(self, tx_hash: str, *, timeout: float | None = None) -> TransactionReceipt:
        """Poll until *tx_hash* is mined.

        Raises:
            TransactionRevertedError: If the transaction reverted.
            TimeoutError: If *timeout* seconds pass without a receipt.
        """
        async with asyncio.timeout(timeout):
            while True:
                receipt = await self.get_receipt(tx_hash)
                if receipt is not None:
                    break
                await asyncio.sleep(self._config.receipt_poll_interval)
        if not receipt.succeeded:
            raise TransactionRevertedError(tx_hash)
        return receipt

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _ensure_connected(self) -> httpx.AsyncClient:
        """Return the HTTP client, raising if not connected."""
        if self._client is None:
            msg = "RPC service not connected. Call connect() first."
            raise RPCError(msg, status_code=500)
        return self._client

    async def _eth_call(self, to: str, data: str) -> str:
        return await self._call("eth_call", [{"to": to, "data": data}, "latest"])

    async def _call(self, method: str, params: list[Any]) -> Any:
        """Perform one JSON-RPC request and return its ``result``."""
        client = self._ensure_connected()
        body = {"jsonrpc": "2.0", "id": next(self._ids), "method": method, "params": params}

        try:
            response = await client.post("", json=body)
        except httpx.HTTPError as exc:
            raise RPCError(f"RPC {method} failed: {exc}") from exc

        if response.status_code != 200:
            raise RPCError(
                f"RPC {method} failed ({response.status_code}): {response.text}",
                status_code=response.status_code,
            )

        try:
            payload = response.json()
        except ValueError as exc:
            raise RPCError(f"RPC {method} returned invalid JSON") from exc

        error = payload.get("error")
        if error:
            if not isinstance(error, dict):
                raise RPCError(f"RPC {method} error: {error}")
            raise RPCError(
                f"RPC {method} error: {error.get('message', error)}",
                rpc_code=error.get("code"),
            )
        return payload.get("result")
