"""Immutable order records passed between the engine, stores and listeners."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any
from uuid import UUID

from orderflow.engine.lifecycle.states import ActorRole, EventType, OrderStatus


@dataclass(frozen=True, slots=True)
class OrderRating:
    score: int
    reviewer_id: str
    created_at: datetime
    comment: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "score": self.score,
            "comment": self.comment,
            "reviewer_id": self.reviewer_id,
            "created_at": self.created_at.isoformat(),
        }


@dataclass(frozen=True, slots=True)
class OrderEvent:
    """One append-only audit entry. ``version`` is the order version it produced."""

    id: UUID
    order_id: UUID
    type: EventType
    version: int
    actor_id: str | None
    actor_role: ActorRole
    created_at: datetime
    payload: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "order_id": str(self.order_id),
            "type": self.type.value,
            "version": self.version,
            "actor_id": self.actor_id,
            "actor_role": self.actor_role.value,
            "created_at": self.created_at.isoformat(),
            "payload": dict(self.payload),
        }


@dataclass(frozen=True, slots=True)
class OrderSnapshot:
    """Point-in-time view of one service order."""

    id: UUID
    status: OrderStatus
    customer_id: str
    service_id: str
    version: int
    created_at: datetime
    updated_at: datetime
    specialist_id: str | None = None
    category_slug: str | None = None
    description: str | None = None
    address_text: str | None = None
    is_urgent: bool = False
    preferred_at: datetime | None = None
    scheduled_at: datetime | None = None
    accept_deadline_at: datetime | None = None
    rating: OrderRating | None = None

    def evolve(self, **changes: Any) -> OrderSnapshot:
        return replace(self, **changes)


# Columns a compare-and-swap may rewrite. Identity and ownership of the
# customer never change after creation.
MUTABLE_FIELDS: frozenset[str] = frozenset(
    {
        "status",
        "specialist_id",
        "scheduled_at",
        "accept_deadline_at",
    }
)


@dataclass(frozen=True, slots=True)
class RatingSummary:
    specialist_id: str
    average: float | None
    count: int
    cancelled_count: int = 0
