"""Order store contract plus the in-process backend.

Every mutation goes through :meth:`OrderStore.compare_and_swap`, which applies
the changes, bumps ``version`` by one and appends the event only when the
stored version still equals ``expected_version``.
"""

from __future__ import annotations

import asyncio
from collections.abc import Iterable, Mapping
from datetime import datetime
from typing import Any, Protocol
from uuid import UUID

from orderflow.engine.lifecycle.clock import ensure_utc
from orderflow.engine.lifecycle.records import (
    MUTABLE_FIELDS,
    OrderEvent,
    OrderRating,
    OrderSnapshot,
    RatingSummary,
)
from orderflow.engine.lifecycle.states import ActorRole, OrderStatus


class VersionConflict(Exception):
    """Raised when the stored version no longer matches the caller's base."""

    def __init__(self, order_id: UUID, expected_version: int, actual_version: int | None = None) -> None:
        super().__init__(
            f"order {order_id} version conflict: expected {expected_version}, found {actual_version}",
        )
        self.order_id = order_id
        self.expected_version = expected_version
        self.actual_version = actual_version


class OrderStore(Protocol):
    async def insert(self, order: OrderSnapshot, event: OrderEvent) -> OrderSnapshot: ...

    async def get(self, order_id: UUID) -> OrderSnapshot | None: ...

    async def list_events(self, order_id: UUID) -> list[OrderEvent]: ...

    async def compare_and_swap(
        self,
        order_id: UUID,
        expected_version: int,
        changes: Mapping[str, Any],
        event: OrderEvent,
        *,
        rating: OrderRating | None = None,
    ) -> OrderSnapshot: ...

    async def list_for_actor(
        self,
        *,
        actor_id: str,
        role: ActorRole,
        statuses: Iterable[OrderStatus],
        limit: int,
    ) -> list[OrderSnapshot]: ...

    async def list_expired_pending(self, now: datetime, *, limit: int) -> list[OrderSnapshot]: ...

    async def rating_summary(self, specialist_id: str) -> RatingSummary: ...

    async def healthcheck(self) -> bool: ...


def validate_changes(changes: Mapping[str, Any]) -> None:
    unknown = set(changes) - MUTABLE_FIELDS - {"updated_at"}
    if unknown:
        raise ValueError(f"Unsupported order changes: {sorted(unknown)}")


class InMemoryOrderStore:
    """Dict-backed store guarded by one asyncio lock."""

    def __init__(self) -> None:
        self._orders: dict[UUID, OrderSnapshot] = {}
        self._events: dict[UUID, list[OrderEvent]] = {}
        self._lock = asyncio.Lock()

    async def insert(self, order: OrderSnapshot, event: OrderEvent) -> OrderSnapshot:
        async with self._lock:
            if order.id in self._orders:
                raise ValueError(f"order {order.id} already exists")
            self._orders[order.id] = order
            self._events[order.id] = [event]
            return order

    async def get(self, order_id: UUID) -> OrderSnapshot | None:
        return self._orders.get(order_id)

    async def list_events(self, order_id: UUID) -> list[OrderEvent]:
        return list(self._events.get(order_id, ()))

    async def compare_and_swap(
        self,
        order_id: UUID,
        expected_version: int,
        changes: Mapping[str, Any],
        event: OrderEvent,
        *,
        rating: OrderRating | None = None,
    ) -> OrderSnapshot:
        validate_changes(changes)
        async with self._lock:
            current = self._orders.get(order_id)
            if current is None or current.version != expected_version:
                raise VersionConflict(
                    order_id,
                    expected_version,
                    current.version if current is not None else None,
                )
            updated = current.evolve(version=expected_version + 1, **changes)
            if rating is not None:
                updated = updated.evolve(rating=rating)
            self._orders[order_id] = updated
            self._events[order_id].append(event)
            return updated

    async def list_for_actor(
        self,
        *,
        actor_id: str,
        role: ActorRole,
        statuses: Iterable[OrderStatus],
        limit: int,
    ) -> list[OrderSnapshot]:
        wanted = set(statuses)
        owner_field = "customer_id" if role == ActorRole.CUSTOMER else "specialist_id"
        matches = [
            order
            for order in self._orders.values()
            if getattr(order, owner_field) == actor_id and order.status in wanted
        ]
        matches.sort(key=lambda order: order.created_at, reverse=True)
        return matches[:limit]

    async def list_expired_pending(self, now: datetime, *, limit: int) -> list[OrderSnapshot]:
        cutoff = ensure_utc(now)
        matches = [
            order
            for order in self._orders.values()
            if order.status == OrderStatus.PENDING
            and order.accept_deadline_at is not None
            and ensure_utc(order.accept_deadline_at) <= cutoff
        ]
        matches.sort(key=lambda order: order.accept_deadline_at)
        return matches[:limit]

    async def rating_summary(self, specialist_id: str) -> RatingSummary:
        held = [order for order in self._orders.values() if order.specialist_id == specialist_id]
        scores = [order.rating.score for order in held if order.rating is not None]
        cancelled = sum(1 for order in held if order.status == OrderStatus.CANCELLED_BY_SPECIALIST)
        return RatingSummary(
            specialist_id=specialist_id,
            average=round(sum(scores) / len(scores), 2) if scores else None,
            count=len(scores),
            cancelled_count=cancelled,
        )

    async def healthcheck(self) -> bool:
        return True
