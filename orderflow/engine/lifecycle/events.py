"""Lifecycle event construction and post-commit fan-out."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from datetime import datetime
from typing import Any
from uuid import uuid4

from orderflow.engine.lifecycle.records import OrderEvent, OrderSnapshot
from orderflow.engine.lifecycle.states import ActorRole, EventType
from orderflow.util.logger import logger

OrderEventListener = Callable[[OrderSnapshot, OrderEvent], Awaitable[None]]


class OrderEventLog:
    """Builds audit events and notifies subscribers once they are durable.

    Events are written by the store together with the version bump, so a
    listener only ever sees events that are already committed. Listener
    failures are logged and never reach the caller of the engine.
    """

    def __init__(self) -> None:
        self._listeners: list[OrderEventListener] = []

    def subscribe(self, listener: OrderEventListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    @staticmethod
    def build(
        order: OrderSnapshot,
        event_type: EventType,
        *,
        version: int,
        actor_id: str | None,
        actor_role: ActorRole,
        created_at: datetime,
        payload: dict[str, Any] | None = None,
    ) -> OrderEvent:
        return OrderEvent(
            id=uuid4(),
            order_id=order.id,
            type=event_type,
            version=version,
            actor_id=actor_id,
            actor_role=actor_role,
            created_at=created_at,
            payload={key: value for key, value in (payload or {}).items() if value is not None},
        )

    async def publish(self, order: OrderSnapshot, event: OrderEvent) -> None:
        for listener in list(self._listeners):
            try:
                await listener(order, event)
            except Exception:
                logger.exception(
                    "Order event listener failed for order %s (%s v%s).",
                    event.order_id,
                    event.type.value,
                    event.version,
                )
