"""StreamEngine — central engine client owning all services."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Callable
    from datetime import datetime

    from streampay.chain.service import ChainService
    from streampay.config.settings import AppConfig
    from streampay.engine.services.balances import BalanceBook, BalanceWatcher
    from streampay.engine.services.tokens import TokenDirectory
    from streampay.engine.state_machine import StreamDraftStateMachine
    from streampay.notifications.service import EventNavigator, NotificationService

logger = logging.getLogger(__name__)

# Error messages
_ERR_NOT_INITIALIZED = "Engine not initialized. Call initialize() first."


class StreamEngine:
    """Central engine that owns the chain clients and the draft state machine.

    Provides lifecycle management and a service registry for the HTTP layer.
    """

    def __init__(self, config: AppConfig, *, clock: Callable[[], datetime] | None = None) -> None:
        """Initialize engine with configuration.

        Args:
            config: Application configuration with chain, token and draft settings.
            clock: Optional clock override for the draft (defaults to UTC now).
        """
        self._config = config
        self._clock = clock
        self._initialized = False

        self._chain: ChainService | None = None
        self._tokens: TokenDirectory | None = None
        self._book: BalanceBook | None = None
        self._watcher: BalanceWatcher | None = None
        self._notifications: NotificationService | None = None
        self._navigator: EventNavigator | None = None
        self._machine: StreamDraftStateMachine | None = None

    async def initialize(self) -> None:
        """Connect the chain clients and seed the draft.

        Raises:
            RuntimeError: If already initialized.
        """
        if self._initialized:
            msg = "Engine already initialized"
            raise RuntimeError(msg)

        from streampay.chain.service import ChainService
        from streampay.engine.services.balances import BalanceBook, BalanceWatcher
        from streampay.engine.services.tokens import TokenDirectory
        from streampay.engine.state_machine import StreamDraftStateMachine
        from streampay.notifications.service import EventNavigator, NotificationService

        self._tokens = TokenDirectory(self._config.tokens)

        self._chain = ChainService(self._config)
        await self._chain.connect()

        self._notifications = NotificationService()
        await self._notifications.start()
        self._navigator = EventNavigator(self._notifications)

        self._book = BalanceBook()
        self._watcher = BalanceWatcher(self._chain, self._book)

        extra = {"clock": self._clock} if self._clock is not None else {}
        self._machine = StreamDraftStateMachine(
            tokens=self._tokens,
            book=self._book,
            chain=self._chain,
            gas=self._chain,
            submitter=self._chain,
            discovery=self._chain,
            navigator=self._navigator,
            account=self._config.chain.account,
            spender=self._config.chain.stream_contract,
            watcher=self._watcher,
            gas_config=self._config.gas,
            min_start_margin_minutes=self._config.draft.min_start_margin_minutes,
            events=self._notifications,
            receipt_timeout=self._config.chain.receipt_timeout,
            **extra,
        )
        self._machine.reconcile()

        self._initialized = True
        logger.info(
            "Stream engine initialized (network %d, account %s)",
            self._config.chain.network_id,
            self._config.chain.account or "<none>",
        )

    async def close(self) -> None:
        """Gracefully shut down all services and connections.

        Can be called multiple times (idempotent).
        """
        if not self._initialized:
            return

        if self._machine is not None:
            await self._machine.close()
            self._machine = None

        if self._watcher is not None:
            await self._watcher.close()
            self._watcher = None
        self._book = None

        if self._notifications is not None:
            await self._notifications.stop()
            self._notifications = None
        self._navigator = None

        if self._chain is not None:
            await self._chain.close()
            self._chain = None

        self._tokens = None
        self._initialized = False

    @property
    def is_initialized(self) -> bool:
        """Check if the engine is initialized."""
        return self._initialized

    @property
    def config(self) -> AppConfig:
        """Get the application configuration."""
        return self._config

    @property
    def chain(self) -> ChainService:
        """Get the chain service (RPC + indexer)."""
        if self._chain is None:
            raise RuntimeError(_ERR_NOT_INITIALIZED)
        return self._chain

    @property
    def tokens(self) -> TokenDirectory:
        """Get the token directory."""
        if self._tokens is None:
            raise RuntimeError(_ERR_NOT_INITIALIZED)
        return self._tokens

    @property
    def watcher(self) -> BalanceWatcher:
        """Get the balance/allowance watcher."""
        if self._watcher is None:
            raise RuntimeError(_ERR_NOT_INITIALIZED)
        return self._watcher

    @property
    def machine(self) -> StreamDraftStateMachine:
        """Get the draft state machine."""
        if self._machine is None:
            raise RuntimeError(_ERR_NOT_INITIALIZED)
        return self._machine

    @property
    def notification_service(self) -> NotificationService | None:
        """Get the notification service (None before initialization)."""
        return self._notifications

    @property
    def navigator(self) -> EventNavigator | None:
        """Get the stream-created navigator (None before initialization)."""
        return self._navigator

    async def health_check(self) -> dict[str, str]:
        """Check health status of all engine components.

        Returns:
            Dictionary with component statuses ('ok', 'error', 'not_initialized').
        """
        status = {
            "engine": "ok" if self._initialized else "not_initialized",
            "rpc": "unknown",
            "discovery": "unknown",
        }
        if self._chain is not None:
            status.update(await self._chain.healthcheck())
        return status
