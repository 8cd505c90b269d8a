"""Protocols for the collaborators the engine consumes.

The engine never talks to a node, wallet, indexer or router directly;
``streampay.chain`` provides the production implementations and tests
substitute fakes.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from streampay.engine.blocks import ChainReference
    from streampay.engine.models.params import CreateStreamParams


class ChainReferenceProvider(Protocol):
    """Latest block number and timestamp plus the average block time."""

    async def latest_reference(self) -> ChainReference: ...


class GasPriceOracle(Protocol):
    """Current gas price in wei."""

    async def gas_price(self) -> int: ...


class TokenReader(Protocol):
    """Read-only ERC-20 lookups."""

    async def decimals(self, token: str) -> int: ...

    async def balance_of(self, token: str, account: str) -> int: ...

    async def allowance(self, token: str, owner: str, spender: str) -> int: ...


class TransactionSubmitter(Protocol):
    """Send ``createStream`` and follow it until it is mined."""

    async def send_create_stream(self, params: CreateStreamParams, gas_price: int) -> str:
        """Submit the call and return the transaction hash."""
        ...

    async def wait_for_receipt(self, tx_hash: str) -> None:
        """Block until mined; raise if the transaction reverted."""
        ...


class DiscoveryHandle(Protocol):
    """Cancellable handle of a running discovery subscription."""

    def cancel(self) -> None: ...

    @property
    def active(self) -> bool: ...


class StreamDiscovery(Protocol):
    """Find the identifier of a freshly created stream once it is indexed."""

    def subscribe(
        self,
        block_number: int,
        sender: str,
        on_stream: Callable[[str], None],
        on_error: Callable[[Exception], None],
    ) -> DiscoveryHandle: ...


class Navigator(Protocol):
    """Hand-off once the created stream is known."""

    async def open_stream(self, stream_id: str) -> None: ...
