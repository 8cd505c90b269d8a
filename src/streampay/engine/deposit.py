"""Deposit calculator — duration, deposit and smallest-unit arithmetic.

All amounts are ``Decimal``. Deposits are rounded half-up to 3 decimal
places; conversion to the token's smallest unit multiplies by
``10**decimals`` and truncates, matching the integer the contract receives.
"""

from __future__ import annotations

import decimal
from datetime import datetime, timedelta
from decimal import ROUND_DOWN, ROUND_HALF_UP, Decimal

from streampay.engine.intervals import MINUTES_PER_DAY, MINUTES_PER_HOUR, Interval, minutes_of

DEPOSIT_DECIMALS = 3

# Enough digits for uint256 amounts
_WIDE_PRECISION = 80


def round_to(value: Decimal | int, places: int) -> Decimal:
    """Round *value* half-up to *places* decimal places."""
    quantum = Decimal(1).scaleb(-places)
    with decimal.localcontext(prec=_WIDE_PRECISION):
        return Decimal(value).quantize(quantum, rounding=ROUND_HALF_UP)


def round3(value: Decimal | int) -> Decimal:
    """Round *value* half-up to 3 decimal places."""
    return round_to(value, DEPOSIT_DECIMALS)


def round_half_up(value: Decimal | int) -> int:
    """Round *value* half-up to the nearest integer."""
    with decimal.localcontext(prec=_WIDE_PRECISION):
        return int(Decimal(value).to_integral_value(rounding=ROUND_HALF_UP))


def to_smallest_units(amount: Decimal | int, decimals: int) -> int:
    """Convert a token amount to its integer smallest-unit representation.

    The result is ``amount * 10**decimals`` truncated toward zero.
    """
    with decimal.localcontext(prec=_WIDE_PRECISION):
        scaled = Decimal(amount).scaleb(decimals)
        return int(scaled.to_integral_value(rounding=ROUND_DOWN))


def from_smallest_units(value: int, decimals: int) -> Decimal:
    """Convert a smallest-unit integer back to a token amount."""
    with decimal.localcontext(prec=_WIDE_PRECISION):
        return Decimal(value).scaleb(-decimals)


# ---------------------------------------------------------------------------
# Duration
# ---------------------------------------------------------------------------


def truncate_to_minute(moment: datetime) -> datetime:
    """Drop seconds and microseconds."""
    return moment.replace(second=0, microsecond=0)


def realign_stop_time(start: datetime, stop: datetime, interval: Interval | str | None) -> datetime:
    """Move *stop* to *start*'s time of day for intervals of a day or longer."""
    parsed = Interval.try_parse(interval)
    if parsed is None or minutes_of(parsed) < MINUTES_PER_DAY:
        return stop
    return stop.replace(hour=start.hour, minute=start.minute)


def recompute_duration(
    start: datetime | None,
    stop: datetime | None,
    interval: Interval | str | None,
) -> tuple[int, datetime | None]:
    """Compute the stream duration in minutes.

    Returns:
        ``(minutes, stop)`` where *stop* is the realigned stop time. The
        duration is 0 until both times are set and never negative.
    """
    if start is None or stop is None:
        return 0, stop
    stop = realign_stop_time(start, stop, interval)
    seconds = int((stop - start).total_seconds())
    return max(seconds // 60, 0), stop


# ---------------------------------------------------------------------------
# Deposit
# ---------------------------------------------------------------------------


def recompute_deposit(
    duration: int,
    interval: Interval | str | None,
    payment: Decimal | None,
    token_address: str | None,
) -> Decimal:
    """Compute the deposit needed to fund *duration* minutes of payments.

    ``round3(duration / minutes_of(interval) * max(payment, 0))``, or 0 when
    the interval, payment or token is missing.
    """
    parsed = Interval.try_parse(interval)
    if parsed is None or not payment or not token_address:
        return Decimal(0)
    with decimal.localcontext(prec=_WIDE_PRECISION):
        intervals = Decimal(duration) / Decimal(minutes_of(parsed))
        return round3(intervals * max(payment, Decimal(0)))


# ---------------------------------------------------------------------------
# Time bounds
# ---------------------------------------------------------------------------


def min_start_time(now: datetime, margin_minutes: int) -> datetime:
    """Earliest allowed start time: *now* rounded up to the minute plus a margin."""
    floor = truncate_to_minute(now)
    if floor < now:
        floor += timedelta(minutes=1)
    return floor + timedelta(minutes=margin_minutes)


def min_stop_time(start: datetime, interval: Interval | str | None) -> datetime:
    """Earliest allowed stop time: one interval (at least an hour) after *start*."""
    parsed = Interval.try_parse(interval)
    minutes = minutes_of(parsed) if parsed is not None else 0
    return start + timedelta(minutes=max(minutes, MINUTES_PER_HOUR))


def format_duration(minutes: int) -> str:
    """Render a minute count as ``"2 days 3 hours 5 minutes"``."""
    if minutes <= 0:
        return "0 minutes"
    days, rest = divmod(minutes, MINUTES_PER_DAY)
    hours, mins = divmod(rest, MINUTES_PER_HOUR)
    parts = []
    for amount, unit in ((days, "day"), (hours, "hour"), (mins, "minute")):
        if amount:
            parts.append(f"{amount} {unit}{'' if amount == 1 else 's'}")
    return " ".join(parts)
