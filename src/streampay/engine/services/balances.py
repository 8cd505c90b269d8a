"""Balance/allowance book and the watcher that fills it.

The book is push-based: values arrive asynchronously from the watcher (or
any other producer) and every registered listener is called after each
update, so validation can be re-run reactively. Missing entries mean
"unknown, not yet validated".
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Callable, Coroutine
from dataclasses import dataclass
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from streampay.engine.deposit import from_smallest_units

if TYPE_CHECKING:
    from streampay.engine.ports import TokenReader

logger = logging.getLogger(__name__)

Listener = Callable[[], None]


@dataclass(frozen=True)
class TokenAmount:
    """An on-chain token quantity in smallest units."""

    decimals: int
    value: int

    @property
    def amount(self) -> Decimal:
        """Displayable amount (``value / 10**decimals``)."""
        return from_smallest_units(self.value, self.decimals)


def _key(*parts: str) -> tuple[str, ...]:
    return tuple(p.lower() for p in parts)


class BalanceBook:
    """In-memory store of known balances and allowances."""

    def __init__(self) -> None:
        self._balances: dict[tuple[str, ...], TokenAmount] = {}
        self._allowances: dict[tuple[str, ...], TokenAmount] = {}
        self._listeners: list[Listener] = []

    def add_listener(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: Listener) -> None:
        with contextlib.suppress(ValueError):
            self._listeners.remove(listener)

    def balance(self, token: str, account: str) -> TokenAmount | None:
        """Known balance of *account* in *token*, or None."""
        if not token or not account:
            return None
        return self._balances.get(_key(token, account))

    def allowance(self, spender: str, token: str, owner: str) -> TokenAmount | None:
        """Known allowance granted by *owner* to *spender*, or None."""
        if not spender or not token or not owner:
            return None
        return self._allowances.get(_key(spender, token, owner))

    def set_balance(self, token: str, account: str, amount: TokenAmount) -> None:
        self._balances[_key(token, account)] = amount
        self._notify()

    def set_allowance(self, spender: str, token: str, owner: str, amount: TokenAmount) -> None:
        self._allowances[_key(spender, token, owner)] = amount
        self._notify()

    def clear(self) -> None:
        self._balances.clear()
        self._allowances.clear()
        self._notify()

    def _notify(self) -> None:
        for listener in list(self._listeners):
            listener()


class BalanceWatcher:
    """Fetch balances and allowances in the background and push them into a book.

    Usage::

        watcher = BalanceWatcher(reader, book)
        watcher.watch_balance(account, token)
        watcher.watch_approvals(spender, token, owner)
        ...
        await watcher.close()
    """

    def __init__(self, reader: TokenReader, book: BalanceBook) -> None:
        self._reader = reader
        self._book = book
        self._decimals: dict[str, int] = {}
        self._tasks: set[asyncio.Task[None]] = set()

    @property
    def book(self) -> BalanceBook:
        return self._book

    @property
    def pending(self) -> int:
        """Number of fetches still in flight."""
        return len(self._tasks)

    def watch_balance(self, account: str, token: str) -> None:
        """Schedule a balance refresh for ``(token, account)``."""
        if not account or not token:
            return
        self._spawn(self._refresh_balance(account, token))

    def watch_approvals(self, spender: str, token: str, owner: str) -> None:
        """Schedule an allowance refresh for ``(spender, token, owner)``."""
        if not spender or not token or not owner:
            return
        self._spawn(self._refresh_allowance(spender, token, owner))

    async def drain(self) -> None:
        """Wait for every scheduled fetch to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def close(self) -> None:
        """Cancel outstanding fetches."""
        for task in list(self._tasks):
            task.cancel()
        for task in list(self._tasks):
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._tasks.clear()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> None:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _token_decimals(self, token: str) -> int:
        key = token.lower()
        if key not in self._decimals:
            self._decimals[key] = await self._reader.decimals(token)
        return self._decimals[key]

    async def _refresh_balance(self, account: str, token: str) -> None:
        try:
            decimals = await self._token_decimals(token)
            value = await self._reader.balance_of(token, account)
        except Exception:
            logger.warning("Balance lookup failed for %s on %s", account, token, exc_info=True)
            return
        self._book.set_balance(token, account, TokenAmount(decimals=decimals, value=value))

    async def _refresh_allowance(self, spender: str, token: str, owner: str) -> None:
        try:
            decimals = await self._token_decimals(token)
            value = await self._reader.allowance(token, owner, spender)
        except Exception:
            logger.warning(
                "Allowance lookup failed for %s -> %s on %s", owner, spender, token, exc_info=True
            )
            return
        self._book.set_allowance(spender, token, owner, TokenAmount(decimals=decimals, value=value))
