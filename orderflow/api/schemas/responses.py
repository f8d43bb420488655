"""Response schemas for order lifecycle endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal
from uuid import UUID

from pydantic import Field

from orderflow.api.schemas.requests import CamelModel
from orderflow.engine.lifecycle import (
    DeadlineMeta,
    OrderEvent,
    OrderSnapshot,
    OrderStatus,
    OrderView,
    RatingSummary,
)


class RatingResponse(CamelModel):
    score: int
    comment: str | None = None
    reviewer_id: str
    created_at: datetime


class DeadlineMetaResponse(CamelModel):
    deadline: Literal["none", "active", "expired"]
    time_left_ms: int | None = None
    deadline_at: datetime | None = None

    @classmethod
    def from_meta(cls, meta: DeadlineMeta) -> DeadlineMetaResponse:
        return cls(
            deadline=meta.deadline.value,
            time_left_ms=meta.time_left_ms,
            deadline_at=meta.deadline_at,
        )


class OrderResponse(CamelModel):
    id: UUID
    status: OrderStatus
    customer_id: str
    specialist_id: str | None = None
    service_id: str
    category_slug: str | None = None
    description: str | None = None
    # Withheld until a specialist has accepted the order.
    address_text: str | None = None
    is_urgent: bool = False
    preferred_at: datetime | None = None
    scheduled_at: datetime | None = None
    accept_deadline_at: datetime | None = None
    version: int
    rating: RatingResponse | None = None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def fields_from_snapshot(cls, order: OrderSnapshot) -> dict[str, Any]:
        rating = None
        if order.rating is not None:
            rating = RatingResponse(
                score=order.rating.score,
                comment=order.rating.comment,
                reviewer_id=order.rating.reviewer_id,
                created_at=order.rating.created_at,
            )
        return {
            "id": order.id,
            "status": order.status,
            "customer_id": order.customer_id,
            "specialist_id": order.specialist_id,
            "service_id": order.service_id,
            "category_slug": order.category_slug,
            "description": order.description,
            "address_text": None if order.status == OrderStatus.PENDING else order.address_text,
            "is_urgent": order.is_urgent,
            "preferred_at": order.preferred_at,
            "scheduled_at": order.scheduled_at,
            "accept_deadline_at": order.accept_deadline_at,
            "version": order.version,
            "rating": rating,
            "created_at": order.created_at,
            "updated_at": order.updated_at,
        }

    @classmethod
    def from_snapshot(cls, order: OrderSnapshot) -> OrderResponse:
        return cls(**cls.fields_from_snapshot(order))


class OrderEnvelopeResponse(CamelModel):
    order: OrderResponse
    meta: DeadlineMetaResponse

    @classmethod
    def from_view(cls, view: OrderView) -> OrderEnvelopeResponse:
        return cls(
            order=OrderResponse.from_snapshot(view.order),
            meta=DeadlineMetaResponse.from_meta(view.meta),
        )


class OrderListItemResponse(OrderResponse):
    meta: DeadlineMetaResponse

    @classmethod
    def from_view(cls, view: OrderView) -> OrderListItemResponse:
        return cls(
            **cls.fields_from_snapshot(view.order),
            meta=DeadlineMetaResponse.from_meta(view.meta),
        )


class OrderListResponse(CamelModel):
    orders: list[OrderListItemResponse] = Field(default_factory=list)


class OrderEventResponse(CamelModel):
    id: UUID
    type: str
    version: int
    actor_id: str | None = None
    actor_role: str
    payload: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime

    @classmethod
    def from_event(cls, event: OrderEvent) -> OrderEventResponse:
        return cls(
            id=event.id,
            type=event.type.value,
            version=event.version,
            actor_id=event.actor_id,
            actor_role=event.actor_role.value,
            payload=dict(event.payload),
            created_at=event.created_at,
        )


class OrderEventListResponse(CamelModel):
    events: list[OrderEventResponse] = Field(default_factory=list)


class RatingSummaryResponse(CamelModel):
    specialist_id: str
    average: float | None = None
    count: int = 0
    cancelled_count: int = 0

    @classmethod
    def from_summary(cls, summary: RatingSummary) -> RatingSummaryResponse:
        return cls(
            specialist_id=summary.specialist_id,
            average=summary.average,
            count=summary.count,
            cancelled_count=summary.cancelled_count,
        )
