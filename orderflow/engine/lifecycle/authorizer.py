"""Pure role/state authorization for order operations."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum

from orderflow.engine.lifecycle.deadline import DeadlineState
from orderflow.engine.lifecycle.states import (
    ACTIVE_STATUSES,
    CANCELLABLE_STATUSES,
    REVIEW_STATUSES,
    ActorRole,
    OrderOperation,
    OrderStatus,
)


class DenyReason(StrEnum):
    WRONG_ROLE = "wrong_role"
    WRONG_STATE = "wrong_state"
    DEADLINE_EXPIRED = "deadline_expired"


@dataclass(frozen=True, slots=True)
class TransitionRule:
    roles: frozenset[ActorRole]
    from_statuses: frozenset[OrderStatus]
    # Resulting status; None for mutations that keep the current status.
    to_status: OrderStatus | None


@dataclass(frozen=True, slots=True)
class AuthorizationDecision:
    allowed: bool
    reason: DenyReason | None = None


ALLOW = AuthorizationDecision(allowed=True)

_CUSTOMER = frozenset({ActorRole.CUSTOMER})
_SPECIALIST = frozenset({ActorRole.SPECIALIST})
_PARTICIPANTS = frozenset({ActorRole.CUSTOMER, ActorRole.SPECIALIST})
_SYSTEM = frozenset({ActorRole.SYSTEM})
_PENDING = frozenset({OrderStatus.PENDING})

TRANSITION_RULES: dict[OrderOperation, TransitionRule] = {
    OrderOperation.ACCEPT: TransitionRule(_SPECIALIST, _PENDING, OrderStatus.ASSIGNED),
    OrderOperation.RESCHEDULE: TransitionRule(_PARTICIPANTS, ACTIVE_STATUSES, None),
    OrderOperation.EXTEND_DEADLINE: TransitionRule(_CUSTOMER, _PENDING, None),
    OrderOperation.FINISH: TransitionRule(_SPECIALIST, ACTIVE_STATUSES, OrderStatus.IN_CLIENT_REVIEW),
    OrderOperation.REJECT_FINISH: TransitionRule(_CUSTOMER, REVIEW_STATUSES, OrderStatus.IN_PROGRESS),
    OrderOperation.CONFIRM: TransitionRule(_CUSTOMER, REVIEW_STATUSES, OrderStatus.CONFIRMED_BY_CLIENT),
    OrderOperation.CANCEL_BY_CUSTOMER: TransitionRule(
        _CUSTOMER,
        CANCELLABLE_STATUSES,
        OrderStatus.CANCELLED_BY_CUSTOMER,
    ),
    OrderOperation.CANCEL_BY_SPECIALIST: TransitionRule(
        _SPECIALIST,
        CANCELLABLE_STATUSES,
        OrderStatus.CANCELLED_BY_SPECIALIST,
    ),
    # Closing after rating is decided by the engine's configuration.
    OrderOperation.RATE: TransitionRule(
        _CUSTOMER,
        frozenset({OrderStatus.CONFIRMED_BY_CLIENT}),
        None,
    ),
    OrderOperation.EXPIRE: TransitionRule(_SYSTEM, _PENDING, OrderStatus.CANCELLED_AUTO),
}


def authorize(
    status: OrderStatus,
    operation: OrderOperation,
    actor_role: ActorRole,
    deadline_state: DeadlineState = DeadlineState.NONE,
) -> AuthorizationDecision:
    """Decide whether ``actor_role`` may run ``operation`` on an order in ``status``.

    Checks run in a fixed order: role, then state, then the acceptance
    window. ``expire`` is the only operation that requires an expired window;
    every other operation on an expired PENDING order is denied.
    """
    rule = TRANSITION_RULES[operation]
    if actor_role not in rule.roles:
        return AuthorizationDecision(allowed=False, reason=DenyReason.WRONG_ROLE)
    if status not in rule.from_statuses:
        return AuthorizationDecision(allowed=False, reason=DenyReason.WRONG_STATE)

    if status == OrderStatus.PENDING:
        if operation == OrderOperation.EXPIRE:
            if deadline_state != DeadlineState.EXPIRED:
                return AuthorizationDecision(allowed=False, reason=DenyReason.WRONG_STATE)
        elif deadline_state == DeadlineState.EXPIRED:
            return AuthorizationDecision(allowed=False, reason=DenyReason.DEADLINE_EXPIRED)
    return ALLOW


def target_status(operation: OrderOperation) -> OrderStatus | None:
    return TRANSITION_RULES[operation].to_status
