"""Service-order lifecycle: statuses, authorization, deadlines, versioned store, engine."""

from orderflow.engine.lifecycle.authorizer import AuthorizationDecision, DenyReason, authorize
from orderflow.engine.lifecycle.clock import Clock, FrozenClock, SystemClock
from orderflow.engine.lifecycle.deadline import DeadlineMeta, DeadlineState, build_deadline_meta, classify, time_left
from orderflow.engine.lifecycle.engine import (
    SYSTEM_ACTOR,
    Actor,
    NewOrder,
    OrderLifecycleEngine,
    OrderView,
    SweepStats,
)
from orderflow.engine.lifecycle.events import OrderEventLog
from orderflow.engine.lifecycle.records import OrderEvent, OrderRating, OrderSnapshot, RatingSummary
from orderflow.engine.lifecycle.states import (
    ActorRole,
    EventType,
    OrderOperation,
    OrderStatus,
)
from orderflow.engine.lifecycle.store import InMemoryOrderStore, OrderStore, VersionConflict

__all__ = [
    "SYSTEM_ACTOR",
    "Actor",
    "ActorRole",
    "AuthorizationDecision",
    "Clock",
    "DeadlineMeta",
    "DeadlineState",
    "DenyReason",
    "EventType",
    "FrozenClock",
    "InMemoryOrderStore",
    "NewOrder",
    "OrderEvent",
    "OrderEventLog",
    "OrderLifecycleEngine",
    "OrderOperation",
    "OrderRating",
    "OrderSnapshot",
    "OrderStatus",
    "OrderStore",
    "OrderView",
    "RatingSummary",
    "SweepStats",
    "SystemClock",
    "VersionConflict",
    "authorize",
    "build_deadline_meta",
    "classify",
    "time_left",
]
