"""Tests for the token directory."""

from __future__ import annotations

import pytest

from streampay.config.settings import TokenConfig
from streampay.engine.services.tokens import TokenDirectory
from streampay.errors.stream_errors import StreamError

DAI = "0x6B175474E89094C44Da98b954EedeAC495271d0F"
USDC = "0xA0b86991c6218b36c1d19D4a2e9Eb0cE3606eB48"


def _directory(**overrides) -> TokenDirectory:
    defaults = {"addresses": {"DAI": DAI, "USDC": USDC}, "accepted": ["DAI"]}
    defaults.update(overrides)
    return TokenDirectory(TokenConfig(**defaults))


class TestTokenDirectory:
    def test_defaults(self) -> None:
        tokens = _directory()
        assert tokens.default_symbol == "DAI"
        assert tokens.default_address == DAI
        assert tokens.native_symbol == "ETH"
        assert tokens.accepted == frozenset({"DAI"})

    def test_symbol_for_is_case_insensitive(self) -> None:
        tokens = _directory()
        assert tokens.symbol_for(DAI.lower()) == "DAI"
        assert tokens.symbol_for(USDC) == "USDC"

    def test_symbol_for_unknown(self) -> None:
        tokens = _directory()
        assert tokens.symbol_for("0x0000000000000000000000000000000000000001") is None
        assert tokens.symbol_for("") is None

    def test_native_maps_to_itself(self) -> None:
        tokens = _directory()
        assert tokens.symbol_for("ETH") == "ETH"
        assert tokens.is_native("ETH") is True
        assert tokens.is_native(DAI) is False

    def test_address_for(self) -> None:
        assert _directory().address_for("USDC") == USDC
        assert _directory().address_for("FOO") is None

    def test_is_accepted(self) -> None:
        tokens = _directory()
        assert tokens.is_accepted("DAI") is True
        assert tokens.is_accepted("USDC") is False

    def test_items(self) -> None:
        assert _directory().items() == [("DAI", DAI), ("USDC", USDC)]

    def test_missing_default_raises(self) -> None:
        with pytest.raises(StreamError, match="default token") as exc_info:
            _directory(default_symbol="WETH")
        assert exc_info.value.code == "default-token-missing"
