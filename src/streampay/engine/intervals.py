"""Interval catalog — supported payment intervals and their minute durations."""

from __future__ import annotations

import enum

from streampay.errors.stream_errors import UnknownIntervalError

MINUTES_PER_HOUR = 60
MINUTES_PER_DAY = 1440


class Interval(enum.StrEnum):
    """Repeating unit of payment release."""

    HOUR = "hour"
    DAY = "day"
    WEEK = "week"
    MONTH = "month"

    @classmethod
    def parse(cls, value: object) -> Interval:
        """Parse a raw value into an Interval.

        Raises:
            UnknownIntervalError: If *value* is not in the catalog.
        """
        if isinstance(value, Interval):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise UnknownIntervalError(value) from None

    @classmethod
    def try_parse(cls, value: object) -> Interval | None:
        """Parse a raw value, returning None for empty or unknown values."""
        if not value:
            return None
        try:
            return cls.parse(value)
        except UnknownIntervalError:
            return None


INTERVAL_MINUTES: dict[Interval, int] = {
    Interval.HOUR: MINUTES_PER_HOUR,
    Interval.DAY: MINUTES_PER_DAY,
    Interval.WEEK: 7 * MINUTES_PER_DAY,
    Interval.MONTH: 30 * MINUTES_PER_DAY,
}


def minutes_of(interval: Interval | str) -> int:
    """Return the minute duration of *interval*.

    Raises:
        UnknownIntervalError: If *interval* is not in the catalog.
    """
    return INTERVAL_MINUTES[Interval.parse(interval)]


def is_shorter_than_a_day(interval: Interval | str) -> bool:
    """Whether *interval* lasts less than one day."""
    return minutes_of(interval) < MINUTES_PER_DAY
