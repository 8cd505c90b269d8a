"""StreamError — base exception class for all streampay errors."""

from __future__ import annotations


class StreamError(Exception):
    """Base error for all stream engine operations.

    Attributes:
        message: Human-readable error description.
        status_code: Suggested HTTP status code.
        code: Machine-readable error code string.
    """

    def __init__(
        self,
        message: str,
        *,
        status_code: int = 500,
        code: str = "stream-error",
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.code = code


class UnknownIntervalError(StreamError):
    """Raised when a value is not a member of the interval catalog."""

    def __init__(self, value: object) -> None:
        super().__init__(f"unknown interval: {value!r}", status_code=400, code="unknown-interval")
        self.value = value


class InvalidTimeRangeError(StreamError):
    """Raised when a stop time lies before its start time."""

    def __init__(self, message: str = "stop time is before start time") -> None:
        super().__init__(message, status_code=400, code="invalid-time-range")
