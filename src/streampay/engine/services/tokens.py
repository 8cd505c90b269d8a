"""Token directory — address↔symbol mapping and the accepted-token allowlist."""

from __future__ import annotations

from typing import TYPE_CHECKING

from streampay.errors.definitions import ErrDefaultTokenMissing

if TYPE_CHECKING:
    from streampay.config.settings import TokenConfig


class TokenDirectory:
    """Resolve token symbols and addresses from configuration.

    Address lookups are case-insensitive; addresses are returned in the
    form they were configured with.
    """

    def __init__(self, config: TokenConfig) -> None:
        self._config = config
        self._by_symbol = dict(config.addresses)
        self._by_address = {addr.lower(): sym for sym, addr in config.addresses.items()}
        if config.default_symbol not in self._by_symbol:
            raise ErrDefaultTokenMissing

    @property
    def default_symbol(self) -> str:
        return self._config.default_symbol

    @property
    def default_address(self) -> str:
        return self._by_symbol[self._config.default_symbol]

    @property
    def native_symbol(self) -> str:
        return self._config.native_symbol

    @property
    def accepted(self) -> frozenset[str]:
        """Symbols that may be streamed."""
        return frozenset(self._config.accepted)

    def symbol_for(self, address: str) -> str | None:
        """Return the symbol of *address*, or None if it is not configured."""
        if not address:
            return None
        if address == self._config.native_symbol:
            return address
        return self._by_address.get(address.lower())

    def address_for(self, symbol: str) -> str | None:
        """Return the configured address of *symbol*."""
        return self._by_symbol.get(symbol)

    def is_accepted(self, symbol: str) -> bool:
        return symbol in self._config.accepted

    def is_native(self, address: str) -> bool:
        """Whether *address* denotes the chain's native asset (no allowance needed)."""
        return address == self._config.native_symbol

    def items(self) -> list[tuple[str, str]]:
        """``(symbol, address)`` pairs in configuration order."""
        return list(self._by_symbol.items())
