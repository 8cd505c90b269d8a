"""Draft API request/response Pydantic schemas.

These are the *API-layer* schemas: thin wrappers that define the HTTP
contract. The route code maps between engine snapshots and these schemas.
"""

from __future__ import annotations

from datetime import datetime  # noqa: TC003 - Pydantic needs this at runtime
from decimal import Decimal  # noqa: TC003 - Pydantic needs this at runtime
from typing import Any

from pydantic import AwareDatetime, BaseModel, Field

# ---------------------------------------------------------------------------
# Generic
# ---------------------------------------------------------------------------


class ErrorResponse(BaseModel):
    """Standard error body ``{"code": "...", "message": "..."}``."""

    code: str
    message: str


# ---------------------------------------------------------------------------
# Draft
# ---------------------------------------------------------------------------


class DraftPatchRequest(BaseModel):
    """PATCH /draft — edit one or more fields.

    Only the fields present in the body are applied, in declaration order.
    """

    token_address: str | None = None
    payment: str | None = Field(None, description="Payment per interval as typed, e.g. '70 DAI'")
    interval: str | None = None
    start_time: AwareDatetime | None = None
    stop_time: AwareDatetime | None = None
    recipient: str | None = None


class RejectionResponse(BaseModel):
    """A single field rejection."""

    reason: str
    detail: dict[str, Any] = Field(default_factory=dict)


class DraftResponse(BaseModel):
    """Serialised draft, derived values and validation state."""

    token_address: str
    token_symbol: str
    payment: Decimal | None = None
    payment_label: str = ""
    interval: str = ""
    min_time: datetime | None = None
    start_time: datetime | None = None
    stop_time: datetime | None = None
    duration: int = 0
    duration_label: str = ""
    deposit: Decimal
    recipient: str = ""
    submitted: bool = False
    submission_status: str
    submission_error: str = ""
    phase: str
    tx_hash: str = ""
    stream_id: str = ""
    errors: dict[str, RejectionResponse] = Field(default_factory=dict)
    deposit_invalid: bool = False
    needs_approval: bool = False
    submittable: bool = False


# ---------------------------------------------------------------------------
# Tokens
# ---------------------------------------------------------------------------


class TokenResponse(BaseModel):
    """A configured token and whether streams may use it."""

    symbol: str
    address: str
    accepted: bool
    default: bool = False
