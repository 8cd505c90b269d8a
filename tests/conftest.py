"""Shared test fixtures for the streampay test suite."""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime
from decimal import Decimal
from typing import TYPE_CHECKING

import pytest

from streampay.engine.blocks import ChainReference

if TYPE_CHECKING:
    from collections.abc import Callable

    from streampay.engine.models.params import CreateStreamParams

# ---------------------------------------------------------------------------
# Shared constants
# ---------------------------------------------------------------------------

NOW = datetime(2024, 1, 1, 12, 0, 30, tzinfo=UTC)

ACCOUNT = "0x5aAeb6053F3E94C9b9A09f33669435E7Ef1BeAed"
RECIPIENT = "0xfB6916095ca1df60bB79Ce92cE3Ea74c37c5d359"
SPENDER = "0xdbF03B407c01E7cD3CBea99509d93f8DDDC8C6FB"
DAI = "0x6B175474E89094C44Da98b954EedeAC495271d0F"


# ---------------------------------------------------------------------------
# Fake collaborators
# ---------------------------------------------------------------------------


class FakeSubscription:
    """Discovery handle whose callbacks are fired by the test."""

    def __init__(
        self,
        block_number: int,
        sender: str,
        on_stream: Callable[[str], None],
        on_error: Callable[[Exception], None],
    ) -> None:
        self.block_number = block_number
        self.sender = sender
        self.on_stream = on_stream
        self.on_error = on_error
        self.cancelled = False

    @property
    def active(self) -> bool:
        return not self.cancelled

    def cancel(self) -> None:
        self.cancelled = True


class FakeChain:
    """In-memory chain: reference, gas, token reads, submission and discovery."""

    def __init__(self) -> None:
        self.reference = ChainReference(
            block_number=1000,
            timestamp=NOW,
            average_seconds_per_block=Decimal(14),
        )
        self.gas = 20_000_000_000
        self.gas_error: Exception | None = None
        self.send_error: Exception | None = None
        self.receipt_error: Exception | None = None
        self.send_gate: asyncio.Event | None = None
        self.receipt_gate: asyncio.Event | None = None
        self.tx_hash = "0xabc"
        self.sent: list[tuple[CreateStreamParams, int]] = []
        self.subscriptions: list[FakeSubscription] = []
        self.token_decimals = 18
        self.balances: dict[str, int] = {}
        self.allowances: dict[str, int] = {}

    async def latest_reference(self) -> ChainReference:
        return self.reference

    async def gas_price(self) -> int:
        if self.gas_error is not None:
            raise self.gas_error
        return self.gas

    async def decimals(self, token: str) -> int:
        return self.token_decimals

    async def balance_of(self, token: str, account: str) -> int:
        return self.balances.get(account.lower(), 0)

    async def allowance(self, token: str, owner: str, spender: str) -> int:
        return self.allowances.get(owner.lower(), 0)

    async def send_create_stream(self, params: CreateStreamParams, gas_price: int) -> str:
        if self.send_gate is not None:
            await self.send_gate.wait()
        if self.send_error is not None:
            raise self.send_error
        self.sent.append((params, gas_price))
        return self.tx_hash

    async def wait_for_receipt(self, tx_hash: str) -> None:
        if self.receipt_gate is not None:
            await self.receipt_gate.wait()
        if self.receipt_error is not None:
            raise self.receipt_error

    def subscribe(
        self,
        block_number: int,
        sender: str,
        on_stream: Callable[[str], None],
        on_error: Callable[[Exception], None],
    ) -> FakeSubscription:
        sub = FakeSubscription(block_number, sender, on_stream, on_error)
        self.subscriptions.append(sub)
        return sub


class FakeNavigator:
    def __init__(self) -> None:
        self.opened: list[str] = []

    async def open_stream(self, stream_id: str) -> None:
        self.opened.append(stream_id)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def app_config():
    """Provide a test AppConfig with safe defaults."""
    from streampay.config.settings import AppConfig, ChainConfig, DiscoveryConfig

    return AppConfig(
        debug=True,
        chain=ChainConfig(
            rpc_url="http://node.test",
            account=ACCOUNT,
            stream_contract=SPENDER,
            receipt_poll_interval=0.0,
        ),
        discovery=DiscoveryConfig(url="http://indexer.test", poll_interval=0.0, timeout=1.0),
    )


@pytest.fixture
def clock() -> Callable[[], datetime]:
    """Fixed clock at ``NOW``."""
    return lambda: NOW


@pytest.fixture
def fake_chain() -> FakeChain:
    return FakeChain()


@pytest.fixture
def fake_navigator() -> FakeNavigator:
    return FakeNavigator()


@pytest.fixture
def balance_book():
    from streampay.engine.services.balances import BalanceBook

    return BalanceBook()


@pytest.fixture
def token_directory(app_config):
    from streampay.engine.services.tokens import TokenDirectory

    return TokenDirectory(app_config.tokens)


@pytest.fixture
def machine(app_config, token_directory, balance_book, fake_chain, fake_navigator, clock):
    """A draft state machine wired to in-memory fakes and a fixed clock."""
    from streampay.engine.state_machine import StreamDraftStateMachine

    sm = StreamDraftStateMachine(
        tokens=token_directory,
        book=balance_book,
        chain=fake_chain,
        gas=fake_chain,
        submitter=fake_chain,
        discovery=fake_chain,
        navigator=fake_navigator,
        account=ACCOUNT,
        spender=SPENDER,
        gas_config=app_config.gas,
        min_start_margin_minutes=app_config.draft.min_start_margin_minutes,
        clock=clock,
    )
    sm.reconcile()
    return sm
