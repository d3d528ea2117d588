"""Routes behind the two widget shells: the floating helper and the header search."""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import JSONResponse

from askai.core.auth import CurrentUser, get_current_user, get_optional_user
from askai.core.dependencies import ServiceContainer, get_container
from askai.schemas.ask import (
    AskResponse,
    AskStatus,
    HelperAskRequest,
    InteractionListResponse,
    InteractionOut,
    NotificationOut,
    SearchAskRequest,
    WidgetStateOut,
)
from askai.services.orchestrator.contracts import Answered, FailureReason, FlowState, FlowVariant, Outcome
from askai.services.orchestrator.registry import WidgetSlot
from askai.utils.rate_limit import enforce_ask_rate_limit

logger = logging.getLogger(__name__)

router = APIRouter()


def _drain(slot: WidgetSlot) -> list[NotificationOut]:
    return [NotificationOut(**n.to_dict()) for n in slot.toasts.drain()]


def _to_response(outcome: Optional[Outcome], slot: WidgetSlot):
    state = slot.orchestrator.state
    if outcome is None:
        return AskResponse(status=AskStatus.IGNORED, state=state)

    if isinstance(outcome, Answered):
        return AskResponse(
            status=AskStatus.ANSWERED,
            state=state,
            response=outcome.response,
            sentiment=outcome.sentiment,
            notifications=_drain(slot),
        )

    body = AskResponse(
        status=AskStatus.FAILED,
        state=state,
        reason=outcome.reason,
        message=outcome.message,
    )
    if outcome.reason == FailureReason.BUSY:
        # Toasts belong to the flow that is still running.
        return JSONResponse(status_code=409, content=body.model_dump(mode="json"))
    body.notifications = _drain(slot)
    return body


async def _ask(
    variant: FlowVariant,
    widget_id: str,
    query: str,
    user: Optional[CurrentUser],
    container: ServiceContainer,
):
    slot = container.registry.get(variant, widget_id)
    outcome = await slot.orchestrator.submit(query, user)
    return _to_response(outcome, slot)


@router.post("/helper/ask", response_model=AskResponse)
async def helper_ask(
    payload: HelperAskRequest,
    request: Request,
    user: Optional[CurrentUser] = Depends(get_optional_user),
    container: ServiceContainer = Depends(get_container),
):
    enforce_ask_rate_limit(request)
    return await _ask(FlowVariant.HELPER, payload.widget_id, payload.query, user, container)


@router.post("/search/ask", response_model=AskResponse)
async def search_ask(
    payload: SearchAskRequest,
    request: Request,
    user: Optional[CurrentUser] = Depends(get_optional_user),
    container: ServiceContainer = Depends(get_container),
):
    enforce_ask_rate_limit(request)
    return await _ask(FlowVariant.SEARCH, payload.widget_id, payload.query, user, container)


@router.get("/widgets/{variant}/{widget_id}/state", response_model=WidgetStateOut)
async def widget_state(
    variant: FlowVariant,
    widget_id: str,
    container: ServiceContainer = Depends(get_container),
):
    slot = container.registry.peek(variant, widget_id)
    if slot is None:
        return WidgetStateOut(widget_id=widget_id, variant=variant.value, state=FlowState.IDLE, busy=False)
    return WidgetStateOut(
        widget_id=widget_id,
        variant=variant.value,
        state=slot.orchestrator.state,
        busy=slot.orchestrator.busy,
        notifications=_drain(slot),
    )


@router.get("/interactions", response_model=InteractionListResponse)
async def list_interactions(
    limit: int = Query(50, ge=1, le=200),
    current_user: CurrentUser = Depends(get_current_user),
    container: ServiceContainer = Depends(get_container),
):
    try:
        rows = await container.store.list_recent(current_user.id, limit=limit)
    except Exception as exc:
        logger.warning("Could not list interactions for user=%s", current_user.id, exc_info=True)
        raise HTTPException(502, "Could not load your questions") from exc
    return InteractionListResponse(
        items=[
            InteractionOut(
                id=row.id,
                query=row.query,
                response=row.response,
                sentiment=row.sentiment,
                created_at=row.created_at,
            )
            for row in rows
        ]
    )
