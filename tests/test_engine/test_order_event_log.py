from __future__ import annotations

from datetime import timedelta
from uuid import uuid4

import pytest

from orderflow.engine.lifecycle import (
    Actor,
    EventType,
    FrozenClock,
    NewOrder,
    OrderEvent,
    OrderEventLog,
    OrderLifecycleEngine,
    OrderSnapshot,
    OrderStatus,
)
from orderflow.exceptions import InvalidTransitionError

CUSTOMER = Actor.customer("cust-1")
SPECIALIST = Actor.specialist("spec-a")


def _new_order() -> NewOrder:
    return NewOrder(customer_id="cust-1", service_id="svc-electrics", is_urgent=True)


@pytest.mark.asyncio
async def test_listeners_receive_committed_events_in_order(
    engine: OrderLifecycleEngine,
    event_log: OrderEventLog,
) -> None:
    received: list[tuple[OrderStatus, EventType, int]] = []

    async def _listener(order: OrderSnapshot, event: OrderEvent) -> None:
        received.append((order.status, event.type, event.version))

    event_log.subscribe(_listener)
    created = await engine.create(CUSTOMER, _new_order())
    await engine.accept(created.order.id, SPECIALIST)
    await engine.finish(created.order.id, SPECIALIST, note="Replaced fuse box")

    assert received == [
        (OrderStatus.PENDING, EventType.CREATED, 0),
        (OrderStatus.ASSIGNED, EventType.ASSIGNED, 1),
        (OrderStatus.IN_CLIENT_REVIEW, EventType.IN_CLIENT_REVIEW, 2),
    ]


@pytest.mark.asyncio
async def test_failing_listener_does_not_affect_caller(
    engine: OrderLifecycleEngine,
    event_log: OrderEventLog,
) -> None:
    delivered: list[EventType] = []

    async def _broken(order: OrderSnapshot, event: OrderEvent) -> None:
        raise RuntimeError("push gateway down")

    async def _healthy(order: OrderSnapshot, event: OrderEvent) -> None:
        delivered.append(event.type)

    event_log.subscribe(_broken)
    event_log.subscribe(_healthy)

    created = await engine.create(CUSTOMER, _new_order())
    view = await engine.accept(created.order.id, SPECIALIST)

    assert view.order.status == OrderStatus.ASSIGNED
    assert delivered == [EventType.CREATED, EventType.ASSIGNED]


@pytest.mark.asyncio
async def test_denied_operations_emit_no_event(
    engine: OrderLifecycleEngine,
    event_log: OrderEventLog,
) -> None:
    received: list[EventType] = []

    async def _listener(order: OrderSnapshot, event: OrderEvent) -> None:
        received.append(event.type)

    created = await engine.create(CUSTOMER, _new_order())
    event_log.subscribe(_listener)

    with pytest.raises(InvalidTransitionError):
        await engine.confirm(created.order.id, CUSTOMER)

    assert received == []


@pytest.mark.asyncio
async def test_unsubscribe_stops_delivery(
    engine: OrderLifecycleEngine,
    event_log: OrderEventLog,
    clock: FrozenClock,
) -> None:
    received: list[EventType] = []

    async def _listener(order: OrderSnapshot, event: OrderEvent) -> None:
        received.append(event.type)

    unsubscribe = event_log.subscribe(_listener)
    await engine.create(CUSTOMER, _new_order())
    unsubscribe()
    clock.advance(timedelta(minutes=1))
    await engine.create(CUSTOMER, _new_order())

    assert received == [EventType.CREATED]
    assert event_log.listener_count == 0


def test_build_drops_empty_payload_values() -> None:
    clock = FrozenClock()
    order = OrderSnapshot(
        id=uuid4(),
        status=OrderStatus.ASSIGNED,
        customer_id="cust-1",
        service_id="svc",
        version=1,
        created_at=clock.now(),
        updated_at=clock.now(),
    )

    event = OrderEventLog.build(
        order,
        EventType.RESCHEDULED,
        version=2,
        actor_id="cust-1",
        actor_role=CUSTOMER.role,
        created_at=clock.now(),
        payload={"reason": None, "scheduled_at": "2026-03-05T10:00:00+00:00"},
    )

    assert event.payload == {"scheduled_at": "2026-03-05T10:00:00+00:00"}
    assert event.to_dict()["type"] == "RESCHEDULED"
