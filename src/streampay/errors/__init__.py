"""Error types for streampay."""

from streampay.errors.stream_errors import StreamError

__all__ = ["StreamError"]
