from __future__ import annotations

from datetime import UTC, datetime, timedelta
from uuid import uuid4

import pytest
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from orderflow.engine.lifecycle import (
    ActorRole,
    EventType,
    FrozenClock,
    OrderEvent,
    OrderEventLog,
    OrderRating,
    OrderSnapshot,
    OrderStatus,
    VersionConflict,
)
from orderflow.engine.lifecycle.sql_store import SqlAlchemyOrderStore
from orderflow.models import OrderEventRow, OrderRatingRow, ServiceOrder

T0 = datetime(2026, 3, 2, 9, 0, tzinfo=UTC)


def _pending(
    *,
    customer_id: str = "cust-1",
    deadline: datetime | None = None,
    created_at: datetime = T0,
) -> OrderSnapshot:
    return OrderSnapshot(
        id=uuid4(),
        status=OrderStatus.PENDING,
        customer_id=customer_id,
        service_id="svc-plumbing",
        category_slug="plumbing",
        description="Leaking kitchen tap",
        address_text="12 Harbour Street",
        preferred_at=T0 + timedelta(days=1),
        accept_deadline_at=deadline,
        version=0,
        created_at=created_at,
        updated_at=created_at,
    )


def _event(order: OrderSnapshot, event_type: EventType, version: int, actor_id: str, role: ActorRole) -> OrderEvent:
    return OrderEventLog.build(
        order,
        event_type,
        version=version,
        actor_id=actor_id,
        actor_role=role,
        created_at=T0,
        payload={"from_status": order.status.value},
    )


async def _insert(store: SqlAlchemyOrderStore, order: OrderSnapshot) -> OrderSnapshot:
    return await store.insert(order, _event(order, EventType.CREATED, 0, order.customer_id, ActorRole.CUSTOMER))


async def _assign(store: SqlAlchemyOrderStore, order: OrderSnapshot, specialist_id: str) -> OrderSnapshot:
    return await store.compare_and_swap(
        order.id,
        order.version,
        {"status": OrderStatus.ASSIGNED, "specialist_id": specialist_id, "accept_deadline_at": None},
        _event(order, EventType.ASSIGNED, order.version + 1, specialist_id, ActorRole.SPECIALIST),
    )


@pytest.mark.asyncio
async def test_insert_and_get_round_trip_keeps_utc(db_session: AsyncSession) -> None:
    store = SqlAlchemyOrderStore(db_session)
    order = _pending(deadline=T0 + timedelta(hours=1))
    await _insert(store, order)

    loaded = await store.get(order.id)

    assert loaded is not None
    assert loaded.status == OrderStatus.PENDING
    assert loaded.version == 0
    assert loaded.accept_deadline_at == T0 + timedelta(hours=1)
    assert loaded.accept_deadline_at.tzinfo is not None
    assert loaded.rating is None
    events = await store.list_events(order.id)
    assert [(event.type, event.version) for event in events] == [(EventType.CREATED, 0)]


@pytest.mark.asyncio
async def test_get_unknown_order_returns_none(db_session: AsyncSession) -> None:
    store = SqlAlchemyOrderStore(db_session)
    assert await store.get(uuid4()) is None


@pytest.mark.asyncio
async def test_compare_and_swap_bumps_version_and_appends_event(db_session: AsyncSession) -> None:
    store = SqlAlchemyOrderStore(db_session)
    order = await _insert(store, _pending(deadline=T0 + timedelta(hours=1)))

    updated = await _assign(store, order, "spec-a")

    assert updated.status == OrderStatus.ASSIGNED
    assert updated.specialist_id == "spec-a"
    assert updated.accept_deadline_at is None
    assert updated.version == 1
    events = await store.list_events(order.id)
    assert [event.version for event in events] == [0, 1]
    assert events[1].payload == {"from_status": "PENDING"}


@pytest.mark.asyncio
async def test_compare_and_swap_rejects_stale_version_without_side_effects(db_session: AsyncSession) -> None:
    store = SqlAlchemyOrderStore(db_session)
    order = await _insert(store, _pending())
    await _assign(store, order, "spec-a")

    with pytest.raises(VersionConflict) as exc_info:
        await _assign(store, order, "spec-b")

    assert exc_info.value.expected_version == 0
    assert exc_info.value.actual_version == 1
    current = await store.get(order.id)
    assert current is not None
    assert current.specialist_id == "spec-a"
    assert len(await store.list_events(order.id)) == 2


@pytest.mark.asyncio
async def test_compare_and_swap_writes_rating_with_specialist(db_session: AsyncSession) -> None:
    store = SqlAlchemyOrderStore(db_session)
    order = await _insert(store, _pending())
    assigned = await _assign(store, order, "spec-a")
    rating = OrderRating(score=4, reviewer_id="cust-1", created_at=T0, comment="Quick and tidy")

    closed = await store.compare_and_swap(
        assigned.id,
        assigned.version,
        {"status": OrderStatus.CLOSED},
        _event(assigned, EventType.CLOSED, assigned.version + 1, "cust-1", ActorRole.CUSTOMER),
        rating=rating,
    )

    assert closed.status == OrderStatus.CLOSED
    assert closed.rating is not None
    assert closed.rating.score == 4
    row = await db_session.scalar(select(OrderRatingRow).where(OrderRatingRow.order_id == order.id))
    assert row is not None
    assert row.specialist_id == "spec-a"


@pytest.mark.asyncio
async def test_rejects_unknown_change_fields(db_session: AsyncSession) -> None:
    store = SqlAlchemyOrderStore(db_session)
    order = await _insert(store, _pending())

    with pytest.raises(ValueError):
        await store.compare_and_swap(
            order.id,
            0,
            {"customer_id": "someone-else"},
            _event(order, EventType.RESCHEDULED, 1, "cust-1", ActorRole.CUSTOMER),
        )


@pytest.mark.asyncio
async def test_list_for_actor_filters_owner_and_status_newest_first(db_session: AsyncSession) -> None:
    store = SqlAlchemyOrderStore(db_session)
    older = await _insert(store, _pending(created_at=T0))
    newer = await _insert(store, _pending(created_at=T0 + timedelta(minutes=5)))
    await _insert(store, _pending(customer_id="cust-2"))
    assigned = await _assign(store, older, "spec-a")

    customer_orders = await store.list_for_actor(
        actor_id="cust-1",
        role=ActorRole.CUSTOMER,
        statuses=[OrderStatus.PENDING, OrderStatus.ASSIGNED],
        limit=10,
    )
    specialist_orders = await store.list_for_actor(
        actor_id="spec-a",
        role=ActorRole.SPECIALIST,
        statuses=[OrderStatus.ASSIGNED],
        limit=10,
    )

    assert [order.id for order in customer_orders] == [newer.id, older.id]
    assert [order.id for order in specialist_orders] == [assigned.id]


@pytest.mark.asyncio
async def test_list_expired_pending_orders_by_deadline(db_session: AsyncSession) -> None:
    store = SqlAlchemyOrderStore(db_session)
    late = await _insert(store, _pending(deadline=T0 + timedelta(minutes=20)))
    early = await _insert(store, _pending(deadline=T0 + timedelta(minutes=10)))
    await _insert(store, _pending(deadline=T0 + timedelta(hours=2)))
    await _insert(store, _pending(deadline=None))
    taken = await _insert(store, _pending(deadline=T0 + timedelta(minutes=5)))
    await _assign(store, taken, "spec-a")

    expired = await store.list_expired_pending(T0 + timedelta(minutes=30), limit=10)
    limited = await store.list_expired_pending(T0 + timedelta(minutes=30), limit=1)

    assert [order.id for order in expired] == [early.id, late.id]
    assert [order.id for order in limited] == [early.id]


@pytest.mark.asyncio
async def test_rating_summary_averages_scores_and_counts_cancellations(db_session: AsyncSession) -> None:
    store = SqlAlchemyOrderStore(db_session)
    for score in (5, 4, 4):
        order = await _insert(store, _pending())
        assigned = await _assign(store, order, "spec-a")
        await store.compare_and_swap(
            assigned.id,
            assigned.version,
            {"status": OrderStatus.CLOSED},
            _event(assigned, EventType.CLOSED, assigned.version + 1, "cust-1", ActorRole.CUSTOMER),
            rating=OrderRating(score=score, reviewer_id="cust-1", created_at=T0),
        )
    dropped = await _assign(store, await _insert(store, _pending()), "spec-a")
    await store.compare_and_swap(
        dropped.id,
        dropped.version,
        {"status": OrderStatus.CANCELLED_BY_SPECIALIST},
        _event(dropped, EventType.CANCELLED_BY_SPECIALIST, dropped.version + 1, "spec-a", ActorRole.SPECIALIST),
    )

    summary = await store.rating_summary("spec-a")
    empty = await store.rating_summary("spec-nobody")

    assert summary.count == 3
    assert summary.average == pytest.approx(4.33)
    assert summary.cancelled_count == 1
    assert empty.count == 0
    assert empty.average is None
    assert empty.cancelled_count == 0


@pytest.mark.asyncio
async def test_event_versions_are_unique_per_order(db_session: AsyncSession) -> None:
    store = SqlAlchemyOrderStore(db_session)
    order = await _insert(store, _pending())

    db_session.add(
        OrderEventRow(
            order_id=order.id,
            type=EventType.CREATED.value,
            version=0,
            actor_id="cust-1",
            actor_role=ActorRole.CUSTOMER.value,
            payload={},
        ),
    )
    with pytest.raises(IntegrityError):
        await db_session.commit()
    await db_session.rollback()


@pytest.mark.asyncio
async def test_status_check_constraint_rejects_unknown_status(db_session: AsyncSession) -> None:
    db_session.add(
        ServiceOrder(
            status="ON_HOLD",
            customer_id="cust-1",
            service_id="svc",
            version=0,
        ),
    )
    with pytest.raises(IntegrityError):
        await db_session.commit()
    await db_session.rollback()


@pytest.mark.asyncio
async def test_engine_runs_against_sql_store(db_session: AsyncSession) -> None:
    from orderflow.engine.lifecycle import Actor, NewOrder, OrderLifecycleEngine

    clock = FrozenClock(T0)
    engine = OrderLifecycleEngine(
        SqlAlchemyOrderStore(db_session),
        clock=clock,
        close_on_rating=True,
        accept_deadline_enabled=True,
    )
    customer = Actor.customer("cust-1")
    specialist = Actor.specialist("spec-a")

    created = await engine.create(
        customer,
        NewOrder(customer_id="cust-1", service_id="svc-plumbing", is_urgent=True),
    )
    order_id = created.order.id
    await engine.accept(order_id, specialist)
    await engine.finish(order_id, specialist)
    await engine.confirm(order_id, customer)
    closed = await engine.rate(order_id, customer, score=5)

    assert closed.order.status == OrderStatus.CLOSED
    assert closed.order.version == 4
    events = await engine.get_events(order_id)
    assert [event.type for event in events] == [
        EventType.CREATED,
        EventType.ASSIGNED,
        EventType.IN_CLIENT_REVIEW,
        EventType.CONFIRMED_BY_CLIENT,
        EventType.CLOSED,
    ]
