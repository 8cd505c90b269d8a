"""Draft reducer — one explicit step per field change.

``reduce`` applies a change to an immutable ``StreamDraft`` and derives
duration and then deposit in the same step. ``reconcile`` re-seeds the
draft from the external context (account, default token, clock).
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import UTC, datetime
from decimal import Decimal

from streampay.engine.deposit import (
    min_start_time,
    min_stop_time,
    recompute_deposit,
    recompute_duration,
    truncate_to_minute,
)
from streampay.engine.models.draft import StreamDraft

# ---------------------------------------------------------------------------
# Field changes
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TokenSelected:
    address: str
    symbol: str


@dataclass(frozen=True)
class PaymentChanged:
    value: Decimal | None
    label: str


@dataclass(frozen=True)
class IntervalChanged:
    interval: str


@dataclass(frozen=True)
class StartTimeChanged:
    start_time: datetime


@dataclass(frozen=True)
class StopTimeChanged:
    stop_time: datetime


@dataclass(frozen=True)
class RecipientChanged:
    recipient: str


FieldChange = (
    TokenSelected
    | PaymentChanged
    | IntervalChanged
    | StartTimeChanged
    | StopTimeChanged
    | RecipientChanged
)


@dataclass(frozen=True)
class ExternalContext:
    """State owned outside the form that the draft must follow.

    Attributes:
        account: Connected sender account.
        default_token_address: Address of the default token.
        default_token_symbol: Symbol of the default token.
        now: Current time from the injected clock.
        min_start_margin_minutes: Safety margin added to *now* for the earliest start.
    """

    account: str
    default_token_address: str
    default_token_symbol: str
    now: datetime
    min_start_margin_minutes: int


# ---------------------------------------------------------------------------
# Derivation
# ---------------------------------------------------------------------------


def derive(draft: StreamDraft) -> StreamDraft:
    """Recompute duration (realigning the stop time) and then the deposit.

    The stop time never falls below one interval (at least an hour) past the
    start, whichever field moved.
    """
    duration, stop_time = recompute_duration(draft.start_time, draft.stop_time, draft.interval)
    if draft.start_time is not None and stop_time is not None:
        floor = min_stop_time(draft.start_time, draft.interval)
        if stop_time < floor:
            duration, stop_time = recompute_duration(draft.start_time, floor, draft.interval)
    deposit = recompute_deposit(duration, draft.interval, draft.payment, draft.token_address)
    return replace(draft, duration=duration, stop_time=stop_time, deposit=deposit)


def _to_utc_minute(moment: datetime) -> datetime:
    """Normalize to UTC (naive values are taken as UTC) at minute granularity."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=UTC)
    return truncate_to_minute(moment.astimezone(UTC))


def _select_token(draft: StreamDraft, change: TokenSelected) -> StreamDraft:
    return replace(draft, token_address=change.address, token_symbol=change.symbol)


def _change_payment(draft: StreamDraft, change: PaymentChanged) -> StreamDraft:
    return replace(draft, payment=change.value, payment_label=change.label)


def _change_interval(draft: StreamDraft, change: IntervalChanged) -> StreamDraft:
    return replace(draft, interval=change.interval)


def _change_start(draft: StreamDraft, change: StartTimeChanged) -> StreamDraft:
    start = _to_utc_minute(change.start_time)
    if draft.min_time is not None and start < draft.min_time:
        start = draft.min_time
    return replace(draft, start_time=start)


def _change_stop(draft: StreamDraft, change: StopTimeChanged) -> StreamDraft:
    return replace(draft, stop_time=_to_utc_minute(change.stop_time))


def _change_recipient(draft: StreamDraft, change: RecipientChanged) -> StreamDraft:
    return replace(draft, recipient=change.recipient.strip())


_HANDLERS = {
    TokenSelected: _select_token,
    PaymentChanged: _change_payment,
    IntervalChanged: _change_interval,
    StartTimeChanged: _change_start,
    StopTimeChanged: _change_stop,
    RecipientChanged: _change_recipient,
}


def reduce(draft: StreamDraft, change: FieldChange) -> StreamDraft:
    """Apply *change* and derive duration and deposit.

    Raises:
        TypeError: If *change* is not a known field change.
    """
    handler = _HANDLERS.get(type(change))
    if handler is None:
        msg = f"Unsupported field change: {type(change).__name__}"
        raise TypeError(msg)
    return derive(handler(draft, change))


def reconcile(draft: StreamDraft, context: ExternalContext) -> StreamDraft:
    """Re-seed *draft* from the external context.

    * The minimum start time only ever moves forward with the clock, and
      the start time follows it.
    * While the default token symbol is selected, its address tracks the
      configured default address.
    """
    fresh_min = min_start_time(context.now.astimezone(UTC), context.min_start_margin_minutes)
    min_time = fresh_min if draft.min_time is None else max(draft.min_time, fresh_min)
    start_time = draft.start_time if draft.start_time is not None else min_time
    start_time = max(start_time, min_time)

    token_address = draft.token_address
    if (
        draft.token_symbol == context.default_token_symbol
        and token_address != context.default_token_address
    ):
        token_address = context.default_token_address

    if (
        min_time == draft.min_time
        and start_time == draft.start_time
        and token_address == draft.token_address
    ):
        return draft
    return derive(
        replace(draft, min_time=min_time, start_time=start_time, token_address=token_address)
    )
