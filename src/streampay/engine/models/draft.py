"""StreamDraft — the user-edited stream configuration."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal

from streampay.engine.intervals import Interval


class SubmissionStatus(enum.StrEnum):
    """Submission status exposed with the draft."""

    IDLE = "idle"
    SUBMITTED = "submitted"
    PENDING = "pending"
    ERROR = "error"


class Phase(enum.StrEnum):
    """Submission lifecycle of the draft state machine.

    Lifecycle: IDLE → VALIDATING → AWAITING_APPROVAL | SUBMITTING
               → PENDING → SETTLED | FAILED
    """

    IDLE = "idle"
    VALIDATING = "validating"
    AWAITING_APPROVAL = "awaiting_approval"
    SUBMITTING = "submitting"
    PENDING = "pending"
    SETTLED = "settled"
    FAILED = "failed"

    @property
    def submission_status(self) -> SubmissionStatus:
        return _PHASE_STATUS[self]

    @property
    def in_flight(self) -> bool:
        """Whether a submission is currently being processed."""
        return self in (Phase.SUBMITTING, Phase.PENDING)


_PHASE_STATUS = {
    Phase.IDLE: SubmissionStatus.IDLE,
    Phase.VALIDATING: SubmissionStatus.SUBMITTED,
    Phase.AWAITING_APPROVAL: SubmissionStatus.IDLE,
    Phase.SUBMITTING: SubmissionStatus.SUBMITTED,
    Phase.PENDING: SubmissionStatus.PENDING,
    Phase.SETTLED: SubmissionStatus.IDLE,
    Phase.FAILED: SubmissionStatus.ERROR,
}


@dataclass(frozen=True)
class StreamDraft:
    """Immutable snapshot of the stream form.

    ``duration`` and ``deposit`` are derived; they are only ever written by
    the reducer. ``submitted`` marks the form as touched by a submit attempt,
    which turns soft-passing empty fields into required-field errors.

    Attributes:
        token_address: Selected token contract address.
        token_symbol: Symbol resolved from the token directory.
        payment: Payment per interval, or None when empty.
        payment_label: Raw payment text as typed (may carry the symbol).
        interval: Raw interval value; ``""`` when unset.
        min_time: Earliest allowed start time.
        start_time: Stream start (minute granularity).
        stop_time: Stream stop (minute granularity).
        duration: Derived duration in minutes.
        deposit: Derived deposit, rounded to 3 decimals.
        recipient: Recipient address.
        submitted: Whether a submit was attempted.
        submission_error: Display message of the last failed submission.
    """

    token_address: str = ""
    token_symbol: str = ""
    payment: Decimal | None = None
    payment_label: str = ""
    interval: str = ""
    min_time: datetime | None = None
    start_time: datetime | None = None
    stop_time: datetime | None = None
    duration: int = 0
    deposit: Decimal = field(default_factory=lambda: Decimal(0))
    recipient: str = ""
    submitted: bool = False
    submission_status: SubmissionStatus = SubmissionStatus.IDLE
    submission_error: str = ""

    @property
    def catalog_interval(self) -> Interval | None:
        """The interval as a catalog member, or None if unset/unknown."""
        return Interval.try_parse(self.interval)


def initial_draft(*, token_symbol: str = "") -> StreamDraft:
    """A fresh draft with every derived field at zero."""
    return StreamDraft(token_symbol=token_symbol)
