"""Stream draft state machine — field edits, validation and the submission lifecycle.

Owns the single mutable draft. Every field edit is one reducer step
(duration → deposit) followed by re-validation. ``submit`` drives the
lifecycle::

    IDLE → VALIDATING → AWAITING_APPROVAL | SUBMITTING → PENDING → SETTLED | FAILED

Only one submission may be in flight. ``reset`` bumps an epoch so results
that arrive for a superseded submission are dropped.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Callable, Coroutine
from dataclasses import dataclass, replace
from datetime import UTC, datetime
from decimal import Decimal, InvalidOperation
from typing import TYPE_CHECKING, Any

from streampay.engine.blocks import BlockTimeEstimator
from streampay.engine.deposit import format_duration, to_smallest_units
from streampay.engine.models.draft import Phase, StreamDraft, initial_draft
from streampay.engine.models.params import CreateStreamParams
from streampay.engine.reducer import (
    ExternalContext,
    FieldChange,
    IntervalChanged,
    PaymentChanged,
    RecipientChanged,
    StartTimeChanged,
    StopTimeChanged,
    TokenSelected,
    reconcile,
    reduce,
)
from streampay.engine.validation import (
    ValidationContext,
    ValidationReport,
    normalize_payment_label,
    validate_draft,
)
from streampay.errors.definitions import ErrBalanceUnknown, ErrNoAccount, ErrSubmissionFailed
from streampay.errors.stream_errors import StreamError
from streampay.notifications.events import DraftEvent

if TYPE_CHECKING:
    from streampay.config.settings import GasConfig
    from streampay.engine.ports import (
        ChainReferenceProvider,
        DiscoveryHandle,
        GasPriceOracle,
        Navigator,
        StreamDiscovery,
        TransactionSubmitter,
    )
    from streampay.engine.services.balances import BalanceBook, BalanceWatcher
    from streampay.engine.services.tokens import TokenDirectory
    from streampay.notifications.service import NotificationService

logger = logging.getLogger(__name__)

DEFAULT_GAS_PRICE = 8_000_000_000
DEFAULT_GAS_PREMIUM = 1_000_000_000


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


@dataclass(frozen=True)
class DraftSnapshot:
    """Everything a caller needs to render the form."""

    draft: StreamDraft
    phase: Phase
    report: ValidationReport
    tx_hash: str
    stream_id: str

    @property
    def submittable(self) -> bool:
        return self.report.submittable

    @property
    def duration_label(self) -> str:
        return format_duration(self.draft.duration)


class StreamDraftStateMachine:
    """Single-draft orchestrator.

    Usage::

        machine = StreamDraftStateMachine(tokens=..., book=..., chain=..., ...)
        machine.reconcile()
        machine.set_payment("70 DAI")
        machine.set_interval("week")
        ...
        phase = await machine.submit()
    """

    def __init__(
        self,
        *,
        tokens: TokenDirectory,
        book: BalanceBook,
        chain: ChainReferenceProvider,
        gas: GasPriceOracle,
        submitter: TransactionSubmitter,
        discovery: StreamDiscovery,
        navigator: Navigator,
        account: str = "",
        spender: str = "",
        watcher: BalanceWatcher | None = None,
        gas_config: GasConfig | None = None,
        min_start_margin_minutes: int = 60,
        clock: Callable[[], datetime] = _utcnow,
        events: NotificationService | None = None,
        receipt_timeout: float | None = None,
    ) -> None:
        self._tokens = tokens
        self._book = book
        self._chain = chain
        self._gas = gas
        self._submitter = submitter
        self._discovery = discovery
        self._navigator = navigator
        self._account = account
        self._spender = spender
        self._watcher = watcher
        self._default_gas_price = gas_config.default_price if gas_config else DEFAULT_GAS_PRICE
        self._gas_premium = gas_config.premium if gas_config else DEFAULT_GAS_PREMIUM
        self._margin = min_start_margin_minutes
        self._clock = clock
        self._events = events
        self._receipt_timeout = receipt_timeout

        self._draft = initial_draft(token_symbol=tokens.default_symbol)
        self._phase = Phase.IDLE
        self._epoch = 0
        self._tx_hash = ""
        self._stream_id = ""
        self._discovery_handle: DiscoveryHandle | None = None
        self._tasks: set[asyncio.Task[None]] = set()
        self._report = self._validate()

        self._book.add_listener(self.on_balances_changed)

    # ------------------------------------------------------------------
    # Read-only state
    # ------------------------------------------------------------------

    @property
    def draft(self) -> StreamDraft:
        return self._draft

    @property
    def phase(self) -> Phase:
        return self._phase

    @property
    def report(self) -> ValidationReport:
        return self._report

    @property
    def account(self) -> str:
        return self._account

    @property
    def tx_hash(self) -> str:
        return self._tx_hash

    @property
    def stream_id(self) -> str:
        return self._stream_id

    @property
    def submittable(self) -> bool:
        return self._report.submittable

    def snapshot(self) -> DraftSnapshot:
        return DraftSnapshot(
            draft=self._draft,
            phase=self._phase,
            report=self._report,
            tx_hash=self._tx_hash,
            stream_id=self._stream_id,
        )

    # ------------------------------------------------------------------
    # Field edits
    # ------------------------------------------------------------------

    def apply(self, change: FieldChange) -> StreamDraft:
        """Apply one field change, derive, and re-validate."""
        self._set_draft(reduce(self._draft, change))
        return self._draft

    def select_token(self, address: str) -> StreamDraft:
        """Select a token by address; unknown addresses get an empty symbol."""
        symbol = self._tokens.symbol_for(address) or ""
        self._watch(address)
        return self.apply(TokenSelected(address=address, symbol=symbol))

    def set_payment(self, label: str, value: Decimal | None = None) -> StreamDraft:
        """Set the payment per interval from its raw text.

        When *value* is omitted it is parsed from *label*; unparseable text
        leaves the value empty.
        """
        if value is None:
            value = _parse_amount(normalize_payment_label(label, self._draft.token_symbol))
        return self.apply(PaymentChanged(value=value, label=label))

    def set_interval(self, interval: str) -> StreamDraft:
        return self.apply(IntervalChanged(interval=str(interval)))

    def set_start_time(self, start_time: datetime) -> StreamDraft:
        return self.apply(StartTimeChanged(start_time=start_time))

    def set_stop_time(self, stop_time: datetime) -> StreamDraft:
        return self.apply(StopTimeChanged(stop_time=stop_time))

    def set_recipient(self, recipient: str) -> StreamDraft:
        return self.apply(RecipientChanged(recipient=recipient))

    # ------------------------------------------------------------------
    # External context
    # ------------------------------------------------------------------

    def external_context(self) -> ExternalContext:
        return ExternalContext(
            account=self._account,
            default_token_address=self._tokens.default_address,
            default_token_symbol=self._tokens.default_symbol,
            now=self._clock(),
            min_start_margin_minutes=self._margin,
        )

    def reconcile(self) -> StreamDraft:
        """Re-seed the draft from the account, default token and clock."""
        draft = reconcile(self._draft, self.external_context())
        self._watch(draft.token_address)
        self._set_draft(draft)
        return self._draft

    def set_account(self, account: str) -> StreamDraft:
        """Follow an account change reported by the wallet."""
        self._account = account
        return self.reconcile()

    def on_balances_changed(self) -> None:
        """Re-validate after the balance book received new data."""
        self._report = self._validate()

    def resolve_approval(self) -> None:
        """The approval flow finished; refresh the allowance and allow a new submit."""
        if self._phase is Phase.AWAITING_APPROVAL:
            self._set_phase(Phase.IDLE)
        self._watch(self._draft.token_address)

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    async def submit(self) -> Phase:
        """Validate and submit the draft.

        Returns the phase reached. A submit while one is already in flight
        is a no-op.
        """
        if self._phase.in_flight:
            return self._phase

        previous = self._phase
        self._set_draft(replace(self._draft, submitted=True, submission_error=""))
        self._set_phase(Phase.VALIDATING)

        if not self._report.submittable:
            self._set_phase(Phase.IDLE if previous is Phase.FAILED else previous)
            return self._phase

        if self._report.needs_approval:
            self._set_phase(Phase.AWAITING_APPROVAL)
            return self._phase

        self._set_phase(Phase.SUBMITTING)
        epoch = self._epoch
        draft = self._draft
        try:
            params, reference_block = await self._build_params(draft)
            gas_price = await self._gas_price()
            tx_hash = await self._submitter.send_create_stream(params, gas_price)
        except Exception as exc:
            if epoch == self._epoch:
                self._fail(exc)
            return self._phase

        if epoch != self._epoch:
            return self._phase

        logger.info(
            "Stream transaction %s sent (blocks %d-%d)", tx_hash, params.start_block, params.stop_block
        )
        self._tx_hash = tx_hash
        self._set_phase(Phase.PENDING)
        self._spawn(self._await_settlement(tx_hash, reference_block, epoch))
        return self._phase

    def reset(self) -> StreamDraft:
        """Drop the draft and any submission in progress."""
        self._epoch += 1
        self._close_discovery()
        for task in list(self._tasks):
            task.cancel()
        self._tx_hash = ""
        self._stream_id = ""
        self._draft = initial_draft(token_symbol=self._tokens.default_symbol)
        self._set_phase(Phase.IDLE)
        return self.reconcile()

    async def close(self) -> None:
        """Tear down: cancel discovery and background work."""
        self._epoch += 1
        self._close_discovery()
        for task in list(self._tasks):
            task.cancel()
        for task in list(self._tasks):
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._tasks.clear()
        self._book.remove_listener(self.on_balances_changed)

    async def wait_idle(self) -> None:
        """Wait for background settlement work to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _validation_context(self) -> ValidationContext:
        return ValidationContext(
            account=self._account,
            spender=self._spender,
            accepted_tokens=self._tokens.accepted,
            native_token=self._tokens.native_symbol,
            balances=self._book,
        )

    def _validate(self) -> ValidationReport:
        return validate_draft(self._draft, self._validation_context())

    def _set_draft(self, draft: StreamDraft) -> None:
        self._draft = replace(draft, submission_status=self._phase.submission_status)
        self._report = self._validate()

    def _set_phase(self, phase: Phase) -> None:
        changed = phase is not self._phase
        self._phase = phase
        self._draft = replace(self._draft, submission_status=phase.submission_status)
        if changed and self._events is not None:
            self._events.notify_nowait(
                DraftEvent(phase=str(phase), tx_hash=self._tx_hash, error=self._draft.submission_error)
            )

    def _fail(self, exc: Exception) -> None:
        message = exc.message if isinstance(exc, StreamError) else str(exc)
        logger.warning("Stream submission failed: %s", message or type(exc).__name__)
        self._close_discovery()
        self._draft = replace(self._draft, submission_error=message or ErrSubmissionFailed.message)
        self._set_phase(Phase.FAILED)

    def _watch(self, token: str) -> None:
        if self._watcher is None or not token or not self._account:
            return
        self._watcher.watch_balance(self._account, token)
        if self._spender and not self._tokens.is_native(token):
            self._watcher.watch_approvals(self._spender, token, self._account)

    def _decimals(self, draft: StreamDraft) -> int:
        balance = self._book.balance(draft.token_address, self._account)
        if balance is None:
            raise ErrBalanceUnknown
        return balance.decimals

    async def _build_params(self, draft: StreamDraft) -> tuple[CreateStreamParams, int]:
        if not self._account:
            raise ErrNoAccount
        decimals = self._decimals(draft)
        interval = draft.catalog_interval
        if interval is None or draft.start_time is None or draft.stop_time is None or draft.payment is None:
            msg = "draft is incomplete"
            raise StreamError(msg, status_code=400, code="draft-incomplete")

        reference = await self._chain.latest_reference()
        estimator = BlockTimeEstimator(reference)
        start_block, stop_block = estimator.compute_start_stop_blocks(
            draft.start_time, draft.stop_time, interval
        )
        params = CreateStreamParams(
            sender=self._account,
            recipient=draft.recipient,
            token=draft.token_address,
            start_block=start_block,
            stop_block=stop_block,
            payment=to_smallest_units(draft.payment, decimals),
            interval_in_blocks=estimator.interval_in_blocks(interval),
            deposit=to_smallest_units(draft.deposit, decimals),
        )
        return params, reference.block_number

    async def _gas_price(self) -> int:
        """Current gas price plus a premium, or the default on failure."""
        try:
            price = await self._gas.gas_price()
        except Exception:
            logger.warning(
                "Gas price lookup failed, using default %d wei", self._default_gas_price, exc_info=True
            )
            return self._default_gas_price
        return (price or 0) + self._gas_premium

    async def _await_settlement(self, tx_hash: str, block_number: int, epoch: int) -> None:
        try:
            await self._wait_for_receipt(tx_hash)
        except Exception as exc:
            if epoch == self._epoch:
                self._fail(exc)
            return
        if epoch != self._epoch:
            return
        self._discovery_handle = self._discovery.subscribe(
            block_number,
            self._account.lower(),
            lambda stream_id: self._on_stream(stream_id, epoch),
            lambda exc: self._on_discovery_error(exc, epoch),
        )

    async def _wait_for_receipt(self, tx_hash: str) -> None:
        """Wait for the receipt, giving up after the configured timeout."""
        try:
            async with asyncio.timeout(self._receipt_timeout):
                await self._submitter.wait_for_receipt(tx_hash)
        except TimeoutError:
            if self._receipt_timeout is None:
                raise
            msg = f"no receipt for {tx_hash} after {self._receipt_timeout:g}s"
            raise StreamError(msg, status_code=504, code="receipt-timeout") from None

    def _on_stream(self, stream_id: str, epoch: int) -> None:
        if epoch != self._epoch:
            return
        self._close_discovery()
        logger.info("Stream %s created by %s", stream_id, self._tx_hash)
        self._stream_id = stream_id
        self._draft = initial_draft(token_symbol=self._tokens.default_symbol)
        self._set_phase(Phase.SETTLED)
        self.reconcile()
        self._spawn(self._navigate(stream_id))

    def _on_discovery_error(self, exc: Exception, epoch: int) -> None:
        if epoch != self._epoch:
            return
        self._fail(exc)

    async def _navigate(self, stream_id: str) -> None:
        try:
            await self._navigator.open_stream(stream_id)
        except Exception:
            logger.exception("Navigation to stream %s failed", stream_id)

    def _close_discovery(self) -> None:
        if self._discovery_handle is not None:
            self._discovery_handle.cancel()
            self._discovery_handle = None

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> None:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)


def _parse_amount(text: str) -> Decimal | None:
    if not text:
        return None
    try:
        value = Decimal(text)
    except InvalidOperation:
        return None
    return value if value.is_finite() else None
