from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

import pytest

from orderflow.engine.lifecycle.clock import FrozenClock, deadline_after, ensure_utc, time_until
from orderflow.engine.lifecycle.deadline import DeadlineState, build_deadline_meta, classify, time_left
from orderflow.engine.lifecycle.states import OrderStatus

T0 = datetime(2026, 3, 2, 9, 0, tzinfo=UTC)


@dataclass
class _OrderStub:
    status: OrderStatus
    accept_deadline_at: datetime | None


def test_classify_active_before_and_expired_after_one_hour_window() -> None:
    order = _OrderStub(status=OrderStatus.PENDING, accept_deadline_at=T0 + timedelta(hours=1))

    assert classify(order, T0 + timedelta(minutes=59)) == DeadlineState.ACTIVE
    assert classify(order, T0 + timedelta(minutes=61)) == DeadlineState.EXPIRED


def test_classify_treats_exact_deadline_as_expired() -> None:
    deadline = T0 + timedelta(hours=1)
    order = _OrderStub(status=OrderStatus.PENDING, accept_deadline_at=deadline)
    assert classify(order, deadline) == DeadlineState.EXPIRED


def test_classify_none_without_deadline_or_outside_pending() -> None:
    assert classify(_OrderStub(OrderStatus.PENDING, None), T0) == DeadlineState.NONE
    assigned = _OrderStub(OrderStatus.ASSIGNED, T0 - timedelta(hours=1))
    assert classify(assigned, T0) == DeadlineState.NONE


def test_time_left_only_while_active() -> None:
    order = _OrderStub(status=OrderStatus.PENDING, accept_deadline_at=T0 + timedelta(minutes=30))

    assert time_left(order, T0) == timedelta(minutes=30)
    assert time_left(order, T0 + timedelta(minutes=31)) is None


def test_build_deadline_meta_reports_milliseconds() -> None:
    deadline = T0 + timedelta(minutes=5)
    order = _OrderStub(status=OrderStatus.PENDING, accept_deadline_at=deadline)

    meta = build_deadline_meta(order, T0)

    assert meta.deadline == DeadlineState.ACTIVE
    assert meta.time_left_ms == 5 * 60 * 1000
    assert meta.deadline_at == deadline
    assert meta.to_dict()["deadline"] == "active"


def test_build_deadline_meta_expired_keeps_deadline_at() -> None:
    deadline = T0 - timedelta(seconds=1)
    meta = build_deadline_meta(_OrderStub(OrderStatus.PENDING, deadline), T0)

    assert meta.deadline == DeadlineState.EXPIRED
    assert meta.time_left_ms is None
    assert meta.deadline_at == deadline


def test_deadline_after_rejects_non_positive_window() -> None:
    with pytest.raises(ValueError):
        deadline_after(T0, timedelta(0))


def test_time_until_never_negative() -> None:
    assert time_until(T0, T0 + timedelta(hours=1)) == timedelta(0)


def test_ensure_utc_tags_naive_datetimes() -> None:
    naive = datetime(2026, 3, 2, 9, 0)
    assert ensure_utc(naive) == T0


def test_frozen_clock_advances() -> None:
    clock = FrozenClock(T0)
    clock.advance(timedelta(minutes=61))
    assert clock.now() == T0 + timedelta(minutes=61)
