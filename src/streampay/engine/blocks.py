"""Block time estimator — convert calendar times and intervals to block numbers.

Fractional block counts are carried as ``Decimal`` and rounded half-up once,
at the end of each computation, so errors do not compound.
"""

from __future__ import annotations

import decimal
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from streampay.engine.deposit import round_half_up
from streampay.engine.intervals import Interval, minutes_of
from streampay.errors.stream_errors import InvalidTimeRangeError

_PRECISION = 80


@dataclass(frozen=True)
class ChainReference:
    """Latest observed chain block used as the estimation anchor.

    Attributes:
        block_number: Number of the latest block.
        timestamp: Timestamp of the latest block (timezone-aware).
        average_seconds_per_block: Average block time in seconds.
    """

    block_number: int
    timestamp: datetime
    average_seconds_per_block: Decimal

    def __post_init__(self) -> None:
        if self.average_seconds_per_block <= 0:
            msg = "average_seconds_per_block must be positive"
            raise ValueError(msg)


class BlockTimeEstimator:
    """Estimate block numbers for a stream schedule from a chain reference."""

    def __init__(self, reference: ChainReference) -> None:
        self._reference = reference

    @property
    def reference(self) -> ChainReference:
        return self._reference

    def block_delta_for_interval(self, interval: Interval | str) -> Decimal:
        """Blocks spanned by one *interval* (unrounded)."""
        with decimal.localcontext(prec=_PRECISION):
            seconds = Decimal(minutes_of(interval) * 60)
            return seconds / self._reference.average_seconds_per_block

    def interval_in_blocks(self, interval: Interval | str) -> int:
        """Blocks spanned by one *interval*, rounded to a whole block."""
        return round_half_up(self.block_delta_for_interval(interval))

    def block_delta_from_now(self, target: datetime) -> int:
        """Estimate the block number mined at *target*.

        ``block_number + round(|target - timestamp| / average_seconds_per_block)``
        """
        ref = self._reference
        seconds = abs(int((target - ref.timestamp).total_seconds()))
        with decimal.localcontext(prec=_PRECISION):
            blocks = Decimal(seconds) / ref.average_seconds_per_block
            return round_half_up(ref.block_number + blocks)

    def compute_start_stop_blocks(
        self,
        start: datetime,
        stop: datetime,
        interval: Interval | str,
    ) -> tuple[int, int]:
        """Compute ``(start_block, stop_block)`` for a stream.

        The number of intervals is an exact decimal division, so a partial
        trailing interval still moves the stop block.

        Raises:
            InvalidTimeRangeError: If *stop* is before *start*.
            UnknownIntervalError: If *interval* is not in the catalog.
        """
        if stop < start:
            raise InvalidTimeRangeError
        start_block = self.block_delta_from_now(start)
        with decimal.localcontext(prec=_PRECISION):
            seconds = Decimal(int((stop - start).total_seconds()))
            interval_count = seconds / 60 / minutes_of(interval)
            stop_block = round_half_up(
                start_block + self.block_delta_for_interval(interval) * interval_count
            )
        return start_block, stop_block
