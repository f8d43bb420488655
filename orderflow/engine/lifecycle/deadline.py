"""Acceptance-window classification shared by reads and the expiry sweep."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import StrEnum
from typing import Any, Protocol

from orderflow.engine.lifecycle.clock import ensure_utc, time_until
from orderflow.engine.lifecycle.states import OrderStatus


class DeadlineState(StrEnum):
    NONE = "none"
    ACTIVE = "active"
    EXPIRED = "expired"


class _DeadlineCarrier(Protocol):
    status: OrderStatus
    accept_deadline_at: datetime | None


@dataclass(frozen=True, slots=True)
class DeadlineMeta:
    deadline: DeadlineState
    time_left_ms: int | None
    deadline_at: datetime | None

    def to_dict(self) -> dict[str, Any]:
        return {
            "deadline": self.deadline.value,
            "time_left_ms": self.time_left_ms,
            "deadline_at": self.deadline_at.isoformat() if self.deadline_at is not None else None,
        }


def classify(order: _DeadlineCarrier, now: datetime) -> DeadlineState:
    if order.status != OrderStatus.PENDING or order.accept_deadline_at is None:
        return DeadlineState.NONE
    if ensure_utc(now) < ensure_utc(order.accept_deadline_at):
        return DeadlineState.ACTIVE
    return DeadlineState.EXPIRED


def time_left(order: _DeadlineCarrier, now: datetime) -> timedelta | None:
    if classify(order, now) != DeadlineState.ACTIVE:
        return None
    assert order.accept_deadline_at is not None
    return time_until(order.accept_deadline_at, now)


def build_deadline_meta(order: _DeadlineCarrier, now: datetime) -> DeadlineMeta:
    state = classify(order, now)
    remaining = time_left(order, now)
    deadline_at = order.accept_deadline_at if order.status == OrderStatus.PENDING else None
    return DeadlineMeta(
        deadline=state,
        time_left_ms=int(remaining.total_seconds() * 1000) if remaining is not None else None,
        deadline_at=ensure_utc(deadline_at) if deadline_at is not None else None,
    )
