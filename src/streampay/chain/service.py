"""Combined JSON-RPC + indexer chain service.

Composes the node client (blocks, gas, token reads, transactions) and the
stream indexer client into the single collaborator the engine consumes.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import TYPE_CHECKING

from streampay.chain.discovery.service import StreamDiscoveryService
from streampay.chain.rpc.service import RPCService
from streampay.errors.chain_errors import RPCError

if TYPE_CHECKING:
    from streampay.chain.discovery.service import DiscoverySubscription
    from streampay.chain.rpc.models import TransactionReceipt
    from streampay.config.settings import AppConfig
    from streampay.engine.blocks import ChainReference
    from streampay.engine.models.params import CreateStreamParams


class ChainService:
    """Unified chain service composing RPC + discovery.

    Usage::

        chain = ChainService(config)
        await chain.connect()
        try:
            reference = await chain.latest_reference()
            tx_hash = await chain.send_create_stream(params, gas_price)
        finally:
            await chain.close()
    """

    def __init__(self, config: AppConfig) -> None:
        """Initialize the chain service with app config.

        Args:
            config: Application configuration containing chain and discovery settings.
        """
        self._rpc = RPCService(config.chain)
        self._discovery = StreamDiscoveryService(config.discovery)

    async def connect(self) -> None:
        """Connect both HTTP clients."""
        await self._rpc.connect()
        await self._discovery.connect()

    async def close(self) -> None:
        """Close both HTTP clients."""
        await self._rpc.close()
        await self._discovery.close()

    @property
    def is_connected(self) -> bool:
        """Check if both services are connected."""
        return self._rpc.is_connected and self._discovery.is_connected

    @property
    def rpc(self) -> RPCService:
        """Direct access to the RPC service."""
        return self._rpc

    @property
    def discovery(self) -> StreamDiscoveryService:
        """Direct access to the discovery service."""
        return self._discovery

    # ------------------------------------------------------------------
    # RPC delegation
    # ------------------------------------------------------------------

    async def latest_reference(self) -> ChainReference:
        return await self._rpc.latest_reference()

    async def gas_price(self) -> int:
        return await self._rpc.gas_price()

    async def decimals(self, token: str) -> int:
        return await self._rpc.decimals(token)

    async def balance_of(self, token: str, account: str) -> int:
        return await self._rpc.balance_of(token, account)

    async def allowance(self, token: str, owner: str, spender: str) -> int:
        return await self._rpc.allowance(token, owner, spender)

    async def send_create_stream(self, params: CreateStreamParams, gas_price: int) -> str:
        return await self._rpc.send_create_stream(params, gas_price)

    async def wait_for_receipt(self, tx_hash: str) -> TransactionReceipt:
        return await self._rpc.wait_for_receipt(tx_hash)

    # ------------------------------------------------------------------
    # Discovery delegation
    # ------------------------------------------------------------------

    def subscribe(
        self,
        block_number: int,
        sender: str,
        on_stream: Callable[[str], None],
        on_error: Callable[[Exception], None],
    ) -> DiscoverySubscription:
        return self._discovery.subscribe(block_number, sender, on_stream, on_error)

    async def healthcheck(self) -> dict[str, str]:
        """Check health of the node and the indexer.

        Returns:
            Dict with 'rpc' and 'discovery' status strings.
        """
        rpc_status = "not_connected"
        if self._rpc.is_connected:
            try:
                await self._rpc.block_number()
                rpc_status = "ok"
            except RPCError:
                rpc_status = "error"
        discovery_healthy = False
        if self._discovery.is_connected:
            discovery_healthy = await self._discovery.healthcheck()
        discovery_status = "ok" if discovery_healthy else "error"

        return {"rpc": rpc_status, "discovery": discovery_status}
