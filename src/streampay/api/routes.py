"""Draft endpoints.

Field edits, submission, reset, approval hand-off, the token list and the
live event feed.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from typing import TYPE_CHECKING, Annotated

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect

from streampay.api.dependencies import get_engine
from streampay.api.schemas import (
    DraftPatchRequest,
    DraftResponse,
    RejectionResponse,
    TokenResponse,
)
from streampay.engine.client import StreamEngine  # noqa: TC001
from streampay.engine.state_machine import DraftSnapshot, StreamDraftStateMachine  # noqa: TC001
from streampay.errors.definitions import ErrUnknownToken

if TYPE_CHECKING:
    from streampay.notifications.events import RawEvent

logger = logging.getLogger(__name__)

# WebSocket close code for "try again later"
_WS_TRY_AGAIN_LATER = 1013

router = APIRouter(tags=["draft"])


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _draft_resp(snapshot: DraftSnapshot) -> dict:
    draft = snapshot.draft
    report = snapshot.report
    errors = {
        name: RejectionResponse(reason=str(r.reason), detail=dict(r.detail))
        for name, r in report.errors.items()
        if r is not None
    }
    return DraftResponse(
        token_address=draft.token_address,
        token_symbol=draft.token_symbol,
        payment=draft.payment,
        payment_label=draft.payment_label,
        interval=draft.interval,
        min_time=draft.min_time,
        start_time=draft.start_time,
        stop_time=draft.stop_time,
        duration=draft.duration,
        duration_label=snapshot.duration_label,
        deposit=draft.deposit,
        recipient=draft.recipient,
        submitted=draft.submitted,
        submission_status=str(draft.submission_status),
        submission_error=draft.submission_error,
        phase=str(snapshot.phase),
        tx_hash=snapshot.tx_hash,
        stream_id=snapshot.stream_id,
        errors=errors,
        deposit_invalid=report.deposit_invalid,
        needs_approval=report.needs_approval,
        submittable=snapshot.submittable,
    ).model_dump(mode="json")


def _apply_patch(machine: StreamDraftStateMachine, engine: StreamEngine, body: DraftPatchRequest) -> None:
    fields = body.model_fields_set
    if "token_address" in fields and body.token_address is not None:
        if engine.tokens.symbol_for(body.token_address) is None:
            raise ErrUnknownToken
        machine.select_token(body.token_address)
    if "payment" in fields:
        machine.set_payment(body.payment or "")
    if "interval" in fields:
        machine.set_interval(body.interval or "")
    if "start_time" in fields and body.start_time is not None:
        machine.set_start_time(body.start_time)
    if "stop_time" in fields and body.stop_time is not None:
        machine.set_stop_time(body.stop_time)
    if "recipient" in fields:
        machine.set_recipient(body.recipient or "")


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------


@router.get("/draft")
async def get_draft(
    engine: Annotated[StreamEngine, Depends(get_engine)],
) -> dict:
    """Current draft, refreshed against the clock and default token."""
    engine.machine.reconcile()
    return _draft_resp(engine.machine.snapshot())


@router.patch("/draft")
async def patch_draft(
    engine: Annotated[StreamEngine, Depends(get_engine)],
    body: DraftPatchRequest,
) -> dict:
    """Edit draft fields; duration and deposit are derived on every change."""
    machine = engine.machine
    machine.reconcile()
    _apply_patch(machine, engine, body)
    return _draft_resp(machine.snapshot())


@router.post("/draft/submit")
async def submit_draft(
    engine: Annotated[StreamEngine, Depends(get_engine)],
) -> dict:
    """Validate and submit the draft as a createStream transaction."""
    machine = engine.machine
    machine.reconcile()
    await machine.submit()
    return _draft_resp(machine.snapshot())


@router.post("/draft/reset")
async def reset_draft(
    engine: Annotated[StreamEngine, Depends(get_engine)],
) -> dict:
    """Drop the draft and any submission in progress."""
    engine.machine.reset()
    return _draft_resp(engine.machine.snapshot())


@router.post("/draft/approved")
async def approval_done(
    engine: Annotated[StreamEngine, Depends(get_engine)],
) -> dict:
    """Signal that the token approval flow completed."""
    engine.machine.resolve_approval()
    return _draft_resp(engine.machine.snapshot())


@router.get("/tokens")
async def list_tokens(
    engine: Annotated[StreamEngine, Depends(get_engine)],
) -> list[dict]:
    """Configured tokens with their accepted flag."""
    tokens = engine.tokens
    return [
        TokenResponse(
            symbol=symbol,
            address=address,
            accepted=tokens.is_accepted(symbol),
            default=symbol == tokens.default_symbol,
        ).model_dump(mode="json")
        for symbol, address in tokens.items()
    ]


@router.websocket("/draft/events")
async def draft_events(websocket: WebSocket) -> None:
    """Push draft phase changes and stream-created hand-offs as JSON."""
    engine: StreamEngine | None = getattr(websocket.app.state, "engine", None)
    notifications = engine.notification_service if engine is not None and engine.is_initialized else None
    if notifications is None:
        await websocket.close(code=_WS_TRY_AGAIN_LATER)
        return

    key = f"ws-{uuid.uuid4().hex}"
    queue = notifications.add_subscriber(key)
    await websocket.accept()
    logger.debug("Event subscriber %s connected", key)
    try:
        await _forward_events(websocket, queue)
    except WebSocketDisconnect:
        logger.debug("Event subscriber %s disconnected", key)
    finally:
        notifications.remove_subscriber(key)


async def _forward_events(websocket: WebSocket, queue: asyncio.Queue[RawEvent]) -> None:
    """Relay queued events until the client goes away.

    Client messages are read (and ignored) so a disconnect ends the loop
    even while no events arrive.
    """
    receiver = asyncio.ensure_future(websocket.receive_text())
    getter: asyncio.Future[RawEvent] | None = None
    try:
        while True:
            getter = asyncio.ensure_future(queue.get())
            done, _ = await asyncio.wait({receiver, getter}, return_when=asyncio.FIRST_COMPLETED)
            if getter in done:
                await websocket.send_json(getter.result().to_dict())
            else:
                getter.cancel()
            if receiver in done:
                receiver.result()
                receiver = asyncio.ensure_future(websocket.receive_text())
    finally:
        receiver.cancel()
        if getter is not None:
            getter.cancel()
