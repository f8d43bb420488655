"""Order statuses, operations and actor roles for the service-order lifecycle."""

from __future__ import annotations

from enum import StrEnum


class OrderStatus(StrEnum):
    PENDING = "PENDING"
    ASSIGNED = "ASSIGNED"
    IN_PROGRESS = "IN_PROGRESS"
    PAUSED = "PAUSED"
    FINISHED_BY_SPECIALIST = "FINISHED_BY_SPECIALIST"
    IN_CLIENT_REVIEW = "IN_CLIENT_REVIEW"
    CONFIRMED_BY_CLIENT = "CONFIRMED_BY_CLIENT"
    CLOSED = "CLOSED"
    CANCELLED_BY_CUSTOMER = "CANCELLED_BY_CUSTOMER"
    CANCELLED_BY_SPECIALIST = "CANCELLED_BY_SPECIALIST"
    CANCELLED_AUTO = "CANCELLED_AUTO"


class OrderOperation(StrEnum):
    ACCEPT = "accept"
    RESCHEDULE = "reschedule"
    EXTEND_DEADLINE = "extend_deadline"
    FINISH = "finish"
    REJECT_FINISH = "reject_finish"
    CONFIRM = "confirm"
    CANCEL_BY_CUSTOMER = "cancel_by_customer"
    CANCEL_BY_SPECIALIST = "cancel_by_specialist"
    RATE = "rate"
    EXPIRE = "expire"


class ActorRole(StrEnum):
    CUSTOMER = "customer"
    SPECIALIST = "specialist"
    SYSTEM = "system"


class EventType(StrEnum):
    """Audit event types: every status plus the non-status mutations."""

    CREATED = "CREATED"
    RESCHEDULED = "RESCHEDULED"
    DEADLINE_EXTENDED = "DEADLINE_EXTENDED"
    RATED = "RATED"
    ASSIGNED = "ASSIGNED"
    IN_PROGRESS = "IN_PROGRESS"
    IN_CLIENT_REVIEW = "IN_CLIENT_REVIEW"
    CONFIRMED_BY_CLIENT = "CONFIRMED_BY_CLIENT"
    CLOSED = "CLOSED"
    CANCELLED_BY_CUSTOMER = "CANCELLED_BY_CUSTOMER"
    CANCELLED_BY_SPECIALIST = "CANCELLED_BY_SPECIALIST"
    CANCELLED_AUTO = "CANCELLED_AUTO"


# ASSIGNED, IN_PROGRESS and PAUSED accept the same transition set.
ACTIVE_STATUSES: frozenset[OrderStatus] = frozenset(
    {
        OrderStatus.ASSIGNED,
        OrderStatus.IN_PROGRESS,
        OrderStatus.PAUSED,
    }
)

# FINISHED_BY_SPECIALIST only appears on legacy rows; finish enters review directly.
REVIEW_STATUSES: frozenset[OrderStatus] = frozenset(
    {
        OrderStatus.FINISHED_BY_SPECIALIST,
        OrderStatus.IN_CLIENT_REVIEW,
    }
)

CANCELLABLE_STATUSES: frozenset[OrderStatus] = frozenset({OrderStatus.PENDING} | ACTIVE_STATUSES)

TERMINAL_STATUSES: frozenset[OrderStatus] = frozenset(
    {
        OrderStatus.CLOSED,
        OrderStatus.CANCELLED_BY_CUSTOMER,
        OrderStatus.CANCELLED_BY_SPECIALIST,
        OrderStatus.CANCELLED_AUTO,
    }
)

OPEN_STATUSES: frozenset[OrderStatus] = frozenset(
    {OrderStatus.PENDING} | ACTIVE_STATUSES | REVIEW_STATUSES
)
CLOSED_STATUSES: frozenset[OrderStatus] = frozenset(OrderStatus) - OPEN_STATUSES


def parse_status(value: str) -> OrderStatus:
    """Parse a persisted status string; unknown values are a data error."""
    return OrderStatus(value.strip().upper())
