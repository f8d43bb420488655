"""Service order lifecycle endpoints."""

from __future__ import annotations

from typing import Annotated, Literal
from uuid import UUID

from fastapi import APIRouter, Body, Depends, Header, HTTPException, Query, Response, status

from orderflow.api.middleware.actor import get_current_actor
from orderflow.api.schemas.requests import (
    AcceptOrderRequest,
    CancelOrderRequest,
    ConfirmOrderRequest,
    CreateOrderRequest,
    ExtendDeadlineRequest,
    FinishOrderRequest,
    RateOrderRequest,
    RejectFinishRequest,
    RescheduleOrderRequest,
    SpecialistCancelRequest,
)
from orderflow.api.schemas.responses import (
    OrderEnvelopeResponse,
    OrderEventListResponse,
    OrderEventResponse,
    OrderListItemResponse,
    OrderListResponse,
)
from orderflow.dependencies import get_order_engine
from orderflow.engine.lifecycle import Actor, ActorRole, NewOrder, OrderLifecycleEngine, OrderView

router = APIRouter(prefix="/orders", tags=["orders"])

ActorDep = Annotated[Actor, Depends(get_current_actor)]
EngineDep = Annotated[OrderLifecycleEngine, Depends(get_order_engine)]
IfMatch = Annotated[str | None, Header(alias="If-Match")]


def parse_if_match(raw: str | None) -> int | None:
    """Parse an ``If-Match`` version; accepts ``3``, ``"3"`` and ``W/"3"``."""
    if raw is None:
        return None
    value = raw.strip()
    if not value:
        return None
    if value.startswith("W/"):
        value = value[2:]
    value = value.strip('"')
    try:
        version = int(value)
    except ValueError:
        version = -1
    if version < 0:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_CONTENT,
            detail={
                "code": "invalid_if_match",
                "message": "If-Match must be a non-negative order version.",
            },
        )
    return version


def _respond(view: OrderView, response: Response) -> OrderEnvelopeResponse:
    response.headers["ETag"] = f'"{view.order.version}"'
    return OrderEnvelopeResponse.from_view(view)


@router.post("", response_model=OrderEnvelopeResponse, status_code=status.HTTP_201_CREATED)
async def create_order(
    payload: CreateOrderRequest,
    response: Response,
    actor: ActorDep,
    engine: EngineDep,
) -> OrderEnvelopeResponse:
    view = await engine.create(
        actor,
        NewOrder(
            customer_id=str(actor.id),
            service_id=payload.service_id,
            category_slug=payload.category_slug,
            description=payload.description,
            address_text=payload.address_text,
            is_urgent=payload.is_urgent,
            preferred_at=payload.preferred_at,
            scheduled_at=payload.scheduled_at,
            accept_window_minutes=payload.accept_window_minutes,
        ),
    )
    return _respond(view, response)


@router.get("/mine", response_model=OrderListResponse)
async def list_my_orders(
    actor: ActorDep,
    engine: EngineDep,
    role: Annotated[Literal["customer", "specialist"], Query()],
    status_filter: Annotated[Literal["open", "closed"], Query(alias="status")] = "open",
    limit: Annotated[int | None, Query(ge=1, le=500)] = None,
) -> OrderListResponse:
    views = await engine.list_for_actor(
        actor,
        role=ActorRole(role),
        status_group=status_filter,
        limit=limit,
    )
    return OrderListResponse(orders=[OrderListItemResponse.from_view(view) for view in views])


@router.get("/{order_id}", response_model=OrderEnvelopeResponse)
async def get_order(
    order_id: UUID,
    response: Response,
    actor: ActorDep,
    engine: EngineDep,
) -> OrderEnvelopeResponse:
    view = await engine.get(order_id, actor)
    return _respond(view, response)


@router.get("/{order_id}/events", response_model=OrderEventListResponse)
async def list_order_events(
    order_id: UUID,
    actor: ActorDep,
    engine: EngineDep,
) -> OrderEventListResponse:
    events = await engine.get_events(order_id, actor)
    return OrderEventListResponse(events=[OrderEventResponse.from_event(event) for event in events])


@router.post("/{order_id}/accept", response_model=OrderEnvelopeResponse)
async def accept_order(
    order_id: UUID,
    response: Response,
    actor: ActorDep,
    engine: EngineDep,
    if_match: IfMatch = None,
    payload: Annotated[AcceptOrderRequest | None, Body()] = None,
) -> OrderEnvelopeResponse:
    view = await engine.accept(
        order_id,
        actor,
        specialist_id=payload.specialist_id if payload is not None else None,
        expected_version=parse_if_match(if_match),
    )
    return _respond(view, response)


@router.post("/{order_id}/reschedule", response_model=OrderEnvelopeResponse)
async def reschedule_order(
    order_id: UUID,
    payload: RescheduleOrderRequest,
    response: Response,
    actor: ActorDep,
    engine: EngineDep,
    if_match: IfMatch = None,
) -> OrderEnvelopeResponse:
    view = await engine.reschedule(
        order_id,
        actor,
        scheduled_at=payload.scheduled_at,
        reason=payload.reason,
        expected_version=parse_if_match(if_match),
    )
    return _respond(view, response)


@router.post("/{order_id}/extend-deadline", response_model=OrderEnvelopeResponse)
async def extend_order_deadline(
    order_id: UUID,
    payload: ExtendDeadlineRequest,
    response: Response,
    actor: ActorDep,
    engine: EngineDep,
    if_match: IfMatch = None,
) -> OrderEnvelopeResponse:
    view = await engine.extend_deadline(
        order_id,
        actor,
        minutes=payload.minutes,
        expected_version=parse_if_match(if_match),
    )
    return _respond(view, response)


@router.post("/{order_id}/finish", response_model=OrderEnvelopeResponse)
async def finish_order(
    order_id: UUID,
    response: Response,
    actor: ActorDep,
    engine: EngineDep,
    if_match: IfMatch = None,
    payload: Annotated[FinishOrderRequest | None, Body()] = None,
) -> OrderEnvelopeResponse:
    body = payload or FinishOrderRequest()
    view = await engine.finish(
        order_id,
        actor,
        note=body.note,
        attachments=body.attachments,
        expected_version=parse_if_match(if_match),
    )
    return _respond(view, response)


@router.post("/{order_id}/confirm", response_model=OrderEnvelopeResponse)
async def confirm_order(
    order_id: UUID,
    response: Response,
    actor: ActorDep,
    engine: EngineDep,
    if_match: IfMatch = None,
    payload: Annotated[ConfirmOrderRequest | None, Body()] = None,
) -> OrderEnvelopeResponse:
    view = await engine.confirm(
        order_id,
        actor,
        note=payload.note if payload is not None else None,
        expected_version=parse_if_match(if_match),
    )
    return _respond(view, response)


@router.post("/{order_id}/reject", response_model=OrderEnvelopeResponse)
async def reject_order_finish(
    order_id: UUID,
    response: Response,
    actor: ActorDep,
    engine: EngineDep,
    if_match: IfMatch = None,
    payload: Annotated[RejectFinishRequest | None, Body()] = None,
) -> OrderEnvelopeResponse:
    view = await engine.reject_finish(
        order_id,
        actor,
        reason=payload.reason if payload is not None else None,
        expected_version=parse_if_match(if_match),
    )
    return _respond(view, response)


@router.post("/{order_id}/cancel", response_model=OrderEnvelopeResponse)
async def cancel_order(
    order_id: UUID,
    response: Response,
    actor: ActorDep,
    engine: EngineDep,
    if_match: IfMatch = None,
    payload: Annotated[CancelOrderRequest | None, Body()] = None,
) -> OrderEnvelopeResponse:
    view = await engine.cancel_by_customer(
        order_id,
        actor,
        reason=payload.reason if payload is not None else None,
        expected_version=parse_if_match(if_match),
    )
    return _respond(view, response)


@router.post("/{order_id}/cancel-by-specialist", response_model=OrderEnvelopeResponse)
async def cancel_order_by_specialist(
    order_id: UUID,
    payload: SpecialistCancelRequest,
    response: Response,
    actor: ActorDep,
    engine: EngineDep,
    if_match: IfMatch = None,
) -> OrderEnvelopeResponse:
    view = await engine.cancel_by_specialist(
        order_id,
        actor,
        reason=payload.reason,
        expected_version=parse_if_match(if_match),
    )
    return _respond(view, response)


@router.post("/{order_id}/rate", response_model=OrderEnvelopeResponse)
async def rate_order(
    order_id: UUID,
    payload: RateOrderRequest,
    response: Response,
    actor: ActorDep,
    engine: EngineDep,
    if_match: IfMatch = None,
) -> OrderEnvelopeResponse:
    view = await engine.rate(
        order_id,
        actor,
        score=payload.score,
        comment=payload.comment,
        expected_version=parse_if_match(if_match),
    )
    return _respond(view, response)
