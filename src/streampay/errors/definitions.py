"""Predefined error instances."""

from __future__ import annotations

from streampay.errors.stream_errors import StreamError

# -- Engine ----------------------------------------------------------------

ErrEngineNotInitialized = StreamError(
    "engine not initialized", status_code=503, code="engine-not-initialized"
)

# -- Tokens ----------------------------------------------------------------

ErrUnknownToken = StreamError("token address is not known", status_code=404, code="unknown-token")
ErrDefaultTokenMissing = StreamError(
    "default token symbol has no configured address",
    status_code=500,
    code="default-token-missing",
)

# -- Submission ------------------------------------------------------------

ErrBalanceUnknown = StreamError(
    "token balance is not known yet", status_code=409, code="balance-unknown"
)
ErrNoAccount = StreamError("no sender account configured", status_code=409, code="no-account")
ErrSubmissionFailed = StreamError(
    "stream submission failed", status_code=502, code="submission-failed"
)
