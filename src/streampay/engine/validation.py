"""Validation engine — field validators for a stream draft.

Every validator is a pure function of the draft and a ``ValidationContext``
and returns either ``None`` (valid) or a ``Rejection``. Validators never
raise; rejections are values used to render messages and to gate
submission.
"""

from __future__ import annotations

import enum
import re
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from types import MappingProxyType
from typing import TYPE_CHECKING, Any

from streampay.engine.deposit import round3, round_to, to_smallest_units
from streampay.engine.intervals import minutes_of
from streampay.utils.address import same_address, validate_address

if TYPE_CHECKING:
    from collections.abc import Mapping

    from streampay.engine.models.draft import StreamDraft
    from streampay.engine.services.balances import BalanceBook

PAYMENT_MAX_DECIMALS = 3
BALANCE_DISPLAY_DECIMALS = 2

_WHITESPACE_RE = re.compile(r"\s+")


class RejectionReason(enum.StrEnum):
    """Machine-readable validation failure codes."""

    TOKEN_NOT_ACCEPTED = "token-not-accepted"
    PAYMENT_ZERO = "payment-zero"
    PAYMENT_DECIMALS_TOO_LONG = "payment-decimals-too-long"
    PAYMENT_INSUFFICIENT_BALANCE = "payment-insufficient-balance"
    INTERVAL_INVALID = "interval-invalid"
    STOP_BEFORE_START = "stop-before-start"
    DURATION_SHORTER_THAN_INTERVAL = "duration-shorter-than-interval"
    RECIPIENT_INVALID = "recipient-invalid"
    RECIPIENT_IS_SELF = "recipient-is-self"
    REQUIRED_FIELD_MISSING = "required-field-missing"
    NEEDS_APPROVAL = "needs-approval"


@dataclass(frozen=True)
class Rejection:
    """A single validation failure with optional display details."""

    reason: RejectionReason
    detail: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))

    def to_dict(self) -> dict[str, Any]:
        return {"reason": str(self.reason), "detail": dict(self.detail)}


def _reject(reason: RejectionReason, **detail: Any) -> Rejection:
    return Rejection(reason=reason, detail=MappingProxyType(detail))


@dataclass(frozen=True)
class ValidationContext:
    """External state the validators need besides the draft.

    Attributes:
        account: Sender account.
        spender: Stream contract that must be approved to pull tokens.
        accepted_tokens: Symbols that may be streamed.
        native_token: Marker used as token address for the native asset.
        balances: Known balances and allowances, if any.
    """

    account: str = ""
    spender: str = ""
    accepted_tokens: frozenset[str] = frozenset()
    native_token: str = "ETH"
    balances: BalanceBook | None = None


# ---------------------------------------------------------------------------
# Field validators
# ---------------------------------------------------------------------------


def validate_token(draft: StreamDraft, ctx: ValidationContext) -> Rejection | None:
    """The token symbol must be on the accepted allowlist.

    The native asset is never accepted: streams pull an ERC-20 contract.
    """
    if draft.token_symbol not in ctx.accepted_tokens:
        return _reject(RejectionReason.TOKEN_NOT_ACCEPTED, token_symbol=draft.token_symbol)
    if draft.token_address == ctx.native_token:
        return _reject(RejectionReason.TOKEN_NOT_ACCEPTED, token_symbol=draft.token_symbol, native=True)
    return None


def normalize_payment_label(label: str, token_symbol: str) -> str:
    """Strip whitespace and the token symbol from a raw payment label."""
    text = _WHITESPACE_RE.sub("", label)
    if token_symbol:
        text = text.replace(token_symbol, "")
    return text


def _zero_at_precision(text: str) -> bool:
    try:
        return round3(Decimal(text)) == 0
    except InvalidOperation:
        return False


def validate_payment(draft: StreamDraft, ctx: ValidationContext) -> Rejection | None:
    """Check the payment text, the balance and presence.

    A fractional literal starting with ``0.0`` that is zero at 3-decimal
    precision is rejected as zero, so ``0.0001`` reports ``payment-zero``
    rather than ``payment-decimals-too-long``.
    """
    text = normalize_payment_label(draft.payment_label, draft.token_symbol)
    parts = text.split(".")

    if len(parts) < 2:
        if draft.payment is not None and draft.payment < 0:
            return _reject(RejectionReason.PAYMENT_ZERO)
    else:
        if text.startswith("0.0") and _zero_at_precision(text):
            return _reject(RejectionReason.PAYMENT_ZERO)
        if len(parts[1]) > PAYMENT_MAX_DECIMALS:
            return _reject(RejectionReason.PAYMENT_DECIMALS_TOO_LONG, max_decimals=PAYMENT_MAX_DECIMALS)

    if ctx.balances is not None:
        balance = ctx.balances.balance(draft.token_address, ctx.account)
        if balance is not None:
            required = to_smallest_units(draft.deposit, balance.decimals)
            if required > balance.value:
                return _reject(
                    RejectionReason.PAYMENT_INSUFFICIENT_BALANCE,
                    balance=round_to(balance.amount, BALANCE_DISPLAY_DECIMALS),
                    token_symbol=draft.token_symbol,
                )

    if draft.submitted and not draft.payment and not draft.payment_label:
        return _reject(RejectionReason.REQUIRED_FIELD_MISSING, field="payment")

    return None


def validate_interval(draft: StreamDraft, ctx: ValidationContext) -> Rejection | None:
    """Soft-pass while untouched and empty; otherwise a catalog member."""
    if not draft.submitted and not draft.interval:
        return None
    if draft.catalog_interval is None:
        return _reject(RejectionReason.INTERVAL_INVALID, interval=draft.interval)
    return None


def validate_times(draft: StreamDraft, ctx: ValidationContext) -> Rejection | None:
    """Stop must be set once touched, not precede start, and span one interval."""
    if draft.submitted and draft.stop_time is None:
        return _reject(RejectionReason.REQUIRED_FIELD_MISSING, field="stop_time")

    if draft.start_time is not None and draft.stop_time is not None:
        if draft.stop_time < draft.start_time:
            return _reject(RejectionReason.STOP_BEFORE_START)

    interval = draft.catalog_interval
    minutes = minutes_of(interval) if interval is not None else 0
    if draft.duration and draft.duration < minutes:
        return _reject(RejectionReason.DURATION_SHORTER_THAN_INTERVAL, minutes=minutes)

    return None


def validate_recipient(draft: StreamDraft, ctx: ValidationContext) -> Rejection | None:
    """Soft-pass while untouched and empty; never the sender; a valid address."""
    if not draft.submitted and not draft.recipient:
        return None
    if same_address(draft.recipient, ctx.account):
        return _reject(RejectionReason.RECIPIENT_IS_SELF)
    if not validate_address(draft.recipient):
        return _reject(RejectionReason.RECIPIENT_INVALID)
    return None


FIELD_VALIDATORS = {
    "token": validate_token,
    "payment": validate_payment,
    "interval": validate_interval,
    "times": validate_times,
    "recipient": validate_recipient,
}


# ---------------------------------------------------------------------------
# Submission gates
# ---------------------------------------------------------------------------


def is_deposit_invalid(draft: StreamDraft) -> bool:
    """Whether the draft lacks anything needed to build the transaction."""
    return (
        not draft.token_address
        or not draft.payment
        or draft.catalog_interval is None
        or draft.start_time is None
        or draft.stop_time is None
        or not validate_address(draft.recipient)
        or not draft.deposit > 0
    )


def needs_approval(draft: StreamDraft, ctx: ValidationContext) -> bool:
    """Whether the stream contract must be approved before submitting.

    Native-asset streams never need approval. An unknown allowance counts
    as insufficient.
    """
    if not draft.token_address or draft.token_address == ctx.native_token:
        return False
    allowance = None
    if ctx.balances is not None:
        allowance = ctx.balances.allowance(ctx.spender, draft.token_address, ctx.account)
    if allowance is None:
        return True
    required = to_smallest_units(draft.deposit, allowance.decimals)
    return not allowance.value > required


@dataclass(frozen=True)
class ValidationReport:
    """Result of running every validator over a draft."""

    errors: Mapping[str, Rejection | None]
    deposit_invalid: bool
    needs_approval: bool

    @property
    def has_errors(self) -> bool:
        return any(r is not None for r in self.errors.values())

    @property
    def submittable(self) -> bool:
        """No field rejections and every required value present."""
        return not self.has_errors and not self.deposit_invalid


def validate_draft(draft: StreamDraft, ctx: ValidationContext) -> ValidationReport:
    """Run every field validator and the submission gates."""
    errors = {name: check(draft, ctx) for name, check in FIELD_VALIDATORS.items()}
    return ValidationReport(
        errors=MappingProxyType(errors),
        deposit_invalid=is_deposit_invalid(draft),
        needs_approval=needs_approval(draft, ctx),
    )


def is_submittable(draft: StreamDraft, ctx: ValidationContext) -> bool:
    return validate_draft(draft, ctx).submittable
