"""Order lifecycle engine: the only component that mutates order state.

Each operation follows the same path: load the order, authorize the actor
against the current status and acceptance window, build the changes, and
commit them with a compare-and-swap on ``version``. A writer that loses the
race re-reads the order; if the operation no longer applies it fails with
``already_resolved``, otherwise it retries a bounded number of times.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, NoReturn
from uuid import UUID, uuid4

from orderflow.config import settings
from orderflow.engine.lifecycle.authorizer import DenyReason, authorize
from orderflow.engine.lifecycle.clock import Clock, SystemClock, deadline_after, ensure_utc
from orderflow.engine.lifecycle.deadline import DeadlineMeta, DeadlineState, build_deadline_meta, classify
from orderflow.engine.lifecycle.events import OrderEventLog
from orderflow.engine.lifecycle.records import OrderEvent, OrderRating, OrderSnapshot, RatingSummary
from orderflow.engine.lifecycle.states import (
    CLOSED_STATUSES,
    OPEN_STATUSES,
    ActorRole,
    EventType,
    OrderOperation,
    OrderStatus,
)
from orderflow.engine.lifecycle.store import OrderStore, VersionConflict
from orderflow.exceptions import (
    AlreadyRatedError,
    AlreadyResolvedError,
    DeadlineExpiredError,
    InvalidTransitionError,
    OrderLifecycleError,
    OrderNotFoundError,
    OrderValidationError,
    WrongRoleError,
)
from orderflow.util.logger import log_transition, logger

MAX_EXTEND_MINUTES = 1440
MIN_ACCEPT_WINDOW_MINUTES = 1
MAX_ACCEPT_WINDOW_MINUTES = 7 * 24 * 60
MAX_COMMENT_LENGTH = 1000


@dataclass(frozen=True, slots=True)
class Actor:
    id: str | None
    role: ActorRole

    @classmethod
    def customer(cls, actor_id: str) -> Actor:
        return cls(id=actor_id, role=ActorRole.CUSTOMER)

    @classmethod
    def specialist(cls, actor_id: str) -> Actor:
        return cls(id=actor_id, role=ActorRole.SPECIALIST)


SYSTEM_ACTOR = Actor(id=None, role=ActorRole.SYSTEM)


@dataclass(frozen=True, slots=True)
class NewOrder:
    customer_id: str
    service_id: str
    category_slug: str | None = None
    description: str | None = None
    address_text: str | None = None
    is_urgent: bool = False
    preferred_at: datetime | None = None
    scheduled_at: datetime | None = None
    accept_window_minutes: int | None = None


@dataclass(frozen=True, slots=True)
class OrderView:
    order: OrderSnapshot
    meta: DeadlineMeta


@dataclass(slots=True)
class SweepStats:
    picked: int = 0
    expired: int = 0
    skipped: int = 0
    expired_ids: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "picked": self.picked,
            "expired": self.expired,
            "skipped": self.skipped,
        }


@dataclass(frozen=True, slots=True)
class _Mutation:
    changes: dict[str, Any]
    event_type: EventType
    payload: dict[str, Any] = field(default_factory=dict)
    rating: OrderRating | None = None


_MutationBuilder = Callable[[OrderSnapshot, datetime], _Mutation]


def _iso(value: datetime | None) -> str | None:
    return ensure_utc(value).isoformat() if value is not None else None


def _clean_text(value: str | None) -> str | None:
    if value is None:
        return None
    stripped = value.strip()
    return stripped or None


class OrderLifecycleEngine:
    """Authorized, versioned transitions over an :class:`OrderStore`."""

    def __init__(
        self,
        store: OrderStore,
        *,
        clock: Clock | None = None,
        events: OrderEventLog | None = None,
        close_on_rating: bool | None = None,
        max_attempts: int | None = None,
        accept_deadline_enabled: bool | None = None,
        accept_window: timedelta | None = None,
        urgent_accept_window: timedelta | None = None,
    ) -> None:
        self.store = store
        self.clock = clock or SystemClock()
        self.events = events or OrderEventLog()
        self.close_on_rating = (
            settings.order_close_on_rating if close_on_rating is None else close_on_rating
        )
        self.max_attempts = max(1, max_attempts or settings.order_cas_max_attempts)
        self.accept_deadline_enabled = (
            settings.order_accept_deadline_enabled
            if accept_deadline_enabled is None
            else accept_deadline_enabled
        )
        self.accept_window = accept_window or timedelta(minutes=settings.order_accept_window_minutes)
        self.urgent_accept_window = urgent_accept_window or timedelta(
            minutes=settings.order_urgent_accept_window_minutes,
        )

    # ------------------------------------------------------------------
    # Creation and reads
    # ------------------------------------------------------------------

    async def create(self, actor: Actor, request: NewOrder) -> OrderView:
        if actor.role != ActorRole.CUSTOMER:
            raise WrongRoleError("Only customers can create orders.")
        if actor.id != request.customer_id:
            raise WrongRoleError("Orders can only be created for the calling customer.")
        if not request.is_urgent and request.preferred_at is None and request.scheduled_at is None:
            raise OrderValidationError(
                "prefer_or_schedule_required",
                "A non-urgent order needs a preferred or scheduled time.",
            )

        now = self.clock.now()
        deadline = None
        window = self._initial_window(request)
        if window is not None:
            deadline = deadline_after(now, window)

        order = OrderSnapshot(
            id=uuid4(),
            status=OrderStatus.PENDING,
            customer_id=request.customer_id,
            specialist_id=None,
            service_id=request.service_id,
            category_slug=_clean_text(request.category_slug),
            description=_clean_text(request.description),
            address_text=_clean_text(request.address_text),
            is_urgent=request.is_urgent,
            preferred_at=ensure_utc(request.preferred_at) if request.preferred_at else None,
            scheduled_at=ensure_utc(request.scheduled_at) if request.scheduled_at else None,
            accept_deadline_at=deadline,
            version=0,
            created_at=now,
            updated_at=now,
        )
        event = self.events.build(
            order,
            EventType.CREATED,
            version=0,
            actor_id=actor.id,
            actor_role=actor.role,
            created_at=now,
            payload={
                "is_urgent": request.is_urgent,
                "accept_deadline_at": _iso(deadline),
            },
        )
        await self.store.insert(order, event)
        log_transition(order.id, "-", OrderStatus.PENDING.value, f"created by {actor.id}")
        await self.events.publish(order, event)
        return self.describe(order, now)

    def _initial_window(self, request: NewOrder) -> timedelta | None:
        if not self.accept_deadline_enabled:
            return None
        if request.accept_window_minutes is not None:
            minutes = int(request.accept_window_minutes)
            if not MIN_ACCEPT_WINDOW_MINUTES <= minutes <= MAX_ACCEPT_WINDOW_MINUTES:
                raise OrderValidationError(
                    "invalid_accept_window",
                    f"acceptWindowMinutes must be between {MIN_ACCEPT_WINDOW_MINUTES} "
                    f"and {MAX_ACCEPT_WINDOW_MINUTES}.",
                )
            return timedelta(minutes=minutes)
        return self.urgent_accept_window if request.is_urgent else self.accept_window

    def describe(self, order: OrderSnapshot, now: datetime | None = None) -> OrderView:
        return OrderView(order=order, meta=build_deadline_meta(order, now or self.clock.now()))

    async def get(self, order_id: UUID, actor: Actor | None = None) -> OrderView:
        order = await self._load(order_id)
        if actor is not None and not self._can_view(order, actor):
            raise WrongRoleError("Order is not visible to this actor.", order_id=order_id)
        return self.describe(order)

    async def get_events(self, order_id: UUID, actor: Actor | None = None) -> list[OrderEvent]:
        order = await self._load(order_id)
        if actor is not None and not self._can_view(order, actor):
            raise WrongRoleError("Order is not visible to this actor.", order_id=order_id)
        return await self.store.list_events(order_id)

    @staticmethod
    def _can_view(order: OrderSnapshot, actor: Actor) -> bool:
        if actor.role == ActorRole.SYSTEM:
            return True
        if actor.role == ActorRole.CUSTOMER:
            return order.customer_id == actor.id
        if order.status == OrderStatus.PENDING:
            return True
        return order.specialist_id == actor.id

    async def list_for_actor(
        self,
        actor: Actor,
        *,
        role: ActorRole,
        status_group: str = "open",
        limit: int | None = None,
    ) -> list[OrderView]:
        if actor.role != role or role == ActorRole.SYSTEM or actor.id is None:
            raise WrongRoleError("Orders can only be listed for the caller's own role.")
        statuses: Iterable[OrderStatus]
        if status_group == "open":
            statuses = OPEN_STATUSES
        elif status_group == "closed":
            statuses = CLOSED_STATUSES
        else:
            raise OrderValidationError("invalid_status_filter", "status must be 'open' or 'closed'.")

        effective_limit = max(1, min(limit or settings.order_list_limit, 500))
        orders = await self.store.list_for_actor(
            actor_id=actor.id,
            role=role,
            statuses=statuses,
            limit=effective_limit,
        )
        now = self.clock.now()
        return [self.describe(order, now) for order in orders]

    async def rating_summary(self, specialist_id: str) -> RatingSummary:
        return await self.store.rating_summary(specialist_id)

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    async def accept(
        self,
        order_id: UUID,
        actor: Actor,
        *,
        specialist_id: str | None = None,
        expected_version: int | None = None,
    ) -> OrderView:
        if specialist_id is not None and specialist_id != actor.id:
            raise WrongRoleError("specialistId must match the calling specialist.", order_id=order_id)

        def build(order: OrderSnapshot, now: datetime) -> _Mutation:
            return _Mutation(
                changes={
                    "status": OrderStatus.ASSIGNED,
                    "specialist_id": actor.id,
                    "accept_deadline_at": None,
                },
                event_type=EventType.ASSIGNED,
                payload={"specialist_id": actor.id},
            )

        return await self._apply(order_id, OrderOperation.ACCEPT, actor, build, expected_version)

    async def reschedule(
        self,
        order_id: UUID,
        actor: Actor,
        *,
        scheduled_at: datetime,
        reason: str | None = None,
        expected_version: int | None = None,
    ) -> OrderView:
        new_time = ensure_utc(scheduled_at)

        def build(order: OrderSnapshot, now: datetime) -> _Mutation:
            return _Mutation(
                changes={"scheduled_at": new_time},
                event_type=EventType.RESCHEDULED,
                payload={
                    "previous_scheduled_at": _iso(order.scheduled_at),
                    "scheduled_at": _iso(new_time),
                    "reason": _clean_text(reason),
                },
            )

        return await self._apply(order_id, OrderOperation.RESCHEDULE, actor, build, expected_version)

    async def extend_deadline(
        self,
        order_id: UUID,
        actor: Actor,
        *,
        minutes: int,
        expected_version: int | None = None,
    ) -> OrderView:
        if not 1 <= int(minutes) <= MAX_EXTEND_MINUTES:
            raise OrderValidationError(
                "invalid_extension",
                f"minutes must be between 1 and {MAX_EXTEND_MINUTES}.",
            )
        extension = timedelta(minutes=int(minutes))

        def build(order: OrderSnapshot, now: datetime) -> _Mutation:
            assert order.accept_deadline_at is not None
            new_deadline = ensure_utc(order.accept_deadline_at) + extension
            return _Mutation(
                changes={"accept_deadline_at": new_deadline},
                event_type=EventType.DEADLINE_EXTENDED,
                payload={
                    "previous_deadline_at": _iso(order.accept_deadline_at),
                    "accept_deadline_at": _iso(new_deadline),
                    "minutes": int(minutes),
                },
            )

        return await self._apply(order_id, OrderOperation.EXTEND_DEADLINE, actor, build, expected_version)

    async def finish(
        self,
        order_id: UUID,
        actor: Actor,
        *,
        note: str | None = None,
        attachments: list[str] | None = None,
        expected_version: int | None = None,
    ) -> OrderView:
        def build(order: OrderSnapshot, now: datetime) -> _Mutation:
            return _Mutation(
                changes={"status": OrderStatus.IN_CLIENT_REVIEW},
                event_type=EventType.IN_CLIENT_REVIEW,
                payload={
                    "note": _clean_text(note),
                    "attachments": list(attachments) if attachments else None,
                },
            )

        return await self._apply(order_id, OrderOperation.FINISH, actor, build, expected_version)

    async def reject_finish(
        self,
        order_id: UUID,
        actor: Actor,
        *,
        reason: str | None = None,
        expected_version: int | None = None,
    ) -> OrderView:
        def build(order: OrderSnapshot, now: datetime) -> _Mutation:
            return _Mutation(
                changes={"status": OrderStatus.IN_PROGRESS},
                event_type=EventType.IN_PROGRESS,
                payload={"reason": _clean_text(reason), "rejected_finish": True},
            )

        return await self._apply(order_id, OrderOperation.REJECT_FINISH, actor, build, expected_version)

    async def confirm(
        self,
        order_id: UUID,
        actor: Actor,
        *,
        note: str | None = None,
        expected_version: int | None = None,
    ) -> OrderView:
        def build(order: OrderSnapshot, now: datetime) -> _Mutation:
            return _Mutation(
                changes={"status": OrderStatus.CONFIRMED_BY_CLIENT},
                event_type=EventType.CONFIRMED_BY_CLIENT,
                payload={"note": _clean_text(note)},
            )

        return await self._apply(order_id, OrderOperation.CONFIRM, actor, build, expected_version)

    async def cancel_by_customer(
        self,
        order_id: UUID,
        actor: Actor,
        *,
        reason: str | None = None,
        expected_version: int | None = None,
    ) -> OrderView:
        def build(order: OrderSnapshot, now: datetime) -> _Mutation:
            return _Mutation(
                changes={
                    "status": OrderStatus.CANCELLED_BY_CUSTOMER,
                    "accept_deadline_at": None,
                },
                event_type=EventType.CANCELLED_BY_CUSTOMER,
                payload={"reason": _clean_text(reason)},
            )

        return await self._apply(order_id, OrderOperation.CANCEL_BY_CUSTOMER, actor, build, expected_version)

    async def cancel_by_specialist(
        self,
        order_id: UUID,
        actor: Actor,
        *,
        reason: str,
        expected_version: int | None = None,
    ) -> OrderView:
        cleaned = _clean_text(reason)
        if cleaned is None:
            raise OrderValidationError("reason_required", "A cancellation reason is required.")

        def build(order: OrderSnapshot, now: datetime) -> _Mutation:
            return _Mutation(
                changes={"status": OrderStatus.CANCELLED_BY_SPECIALIST},
                event_type=EventType.CANCELLED_BY_SPECIALIST,
                payload={"reason": cleaned},
            )

        return await self._apply(
            order_id,
            OrderOperation.CANCEL_BY_SPECIALIST,
            actor,
            build,
            expected_version,
        )

    async def rate(
        self,
        order_id: UUID,
        actor: Actor,
        *,
        score: int,
        comment: str | None = None,
        expected_version: int | None = None,
    ) -> OrderView:
        if not 1 <= int(score) <= 5:
            raise OrderValidationError("invalid_score", "score must be between 1 and 5.")
        cleaned_comment = _clean_text(comment)
        if cleaned_comment is not None and len(cleaned_comment) > MAX_COMMENT_LENGTH:
            raise OrderValidationError(
                "comment_too_long",
                f"comment must be at most {MAX_COMMENT_LENGTH} characters.",
            )

        def build(order: OrderSnapshot, now: datetime) -> _Mutation:
            rating = OrderRating(
                score=int(score),
                comment=cleaned_comment,
                reviewer_id=str(actor.id),
                created_at=now,
            )
            payload = {"score": int(score), "comment": cleaned_comment}
            if self.close_on_rating:
                return _Mutation(
                    changes={"status": OrderStatus.CLOSED},
                    event_type=EventType.CLOSED,
                    payload=payload,
                    rating=rating,
                )
            return _Mutation(changes={}, event_type=EventType.RATED, payload=payload, rating=rating)

        return await self._apply(order_id, OrderOperation.RATE, actor, build, expected_version)

    async def expire(self, order_id: UUID, *, expected_version: int | None = None) -> OrderView:
        return await self._apply(
            order_id,
            OrderOperation.EXPIRE,
            SYSTEM_ACTOR,
            self._build_expiry,
            expected_version,
        )

    @staticmethod
    def _build_expiry(order: OrderSnapshot, now: datetime) -> _Mutation:
        return _Mutation(
            changes={
                "status": OrderStatus.CANCELLED_AUTO,
                "accept_deadline_at": None,
            },
            event_type=EventType.CANCELLED_AUTO,
            payload={"deadline_at": _iso(order.accept_deadline_at)},
        )

    # ------------------------------------------------------------------
    # Expiry sweep
    # ------------------------------------------------------------------

    async def sweep_expired(self, *, limit: int | None = None) -> SweepStats:
        """Durably expire PENDING orders whose acceptance window has passed.

        Each order gets its own compare-and-swap; an order that another writer
        touched in the meantime is skipped and left for its new owner.
        """
        now = self.clock.now()
        batch = max(1, limit or settings.order_sweep_batch_size)
        candidates = await self.store.list_expired_pending(now, limit=batch)
        stats = SweepStats(picked=len(candidates))
        for order in candidates:
            if classify(order, now) != DeadlineState.EXPIRED:
                stats.skipped += 1
                continue
            expired = await self._try_expire(order, now)
            if expired is None:
                stats.skipped += 1
                continue
            stats.expired += 1
            stats.expired_ids.append(str(order.id))

        if stats.picked:
            logger.info(
                "Expiry sweep: picked=%s expired=%s skipped=%s",
                stats.picked,
                stats.expired,
                stats.skipped,
            )
        return stats

    async def _try_expire(self, order: OrderSnapshot, now: datetime) -> OrderSnapshot | None:
        """Single expiry attempt on ``order``'s version; None when it lost a race."""
        decision = authorize(order.status, OrderOperation.EXPIRE, ActorRole.SYSTEM, classify(order, now))
        if not decision.allowed:
            return None
        try:
            return await self._commit(
                order,
                OrderOperation.EXPIRE,
                SYSTEM_ACTOR,
                self._build_expiry(order, now),
                now,
            )
        except VersionConflict:
            logger.debug("Order %s changed before it could be expired; skipped.", order.id)
            return None

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _load(self, order_id: UUID) -> OrderSnapshot:
        order = await self.store.get(order_id)
        if order is None:
            raise OrderNotFoundError(f"Order {order_id} not found.", order_id=order_id)
        return order

    async def _apply(
        self,
        order_id: UUID,
        operation: OrderOperation,
        actor: Actor,
        build: _MutationBuilder,
        expected_version: int | None = None,
    ) -> OrderView:
        lost_race = False
        attempt = 0
        while True:
            attempt += 1
            order = await self._load(order_id)
            now = self.clock.now()
            if expected_version is not None and order.version != expected_version:
                lost_race = True

            denial = self._deny(order, operation, actor, classify(order, now))
            if denial is not None:
                await self._reject(order, operation, actor, denial, now, lost_race=lost_race)

            mutation = build(order, now)
            try:
                updated = await self._commit(order, operation, actor, mutation, now)
            except VersionConflict:
                if attempt >= self.max_attempts:
                    logger.info(
                        "Order %s: %s gave up after %s conflicting attempts.",
                        order_id,
                        operation.value,
                        attempt,
                    )
                    raise AlreadyResolvedError(
                        f"Order {order_id} kept changing; {operation.value} was not applied.",
                        order_id=order_id,
                    ) from None
                lost_race = True
                continue
            return self.describe(updated, now)

    async def _reject(
        self,
        order: OrderSnapshot,
        operation: OrderOperation,
        actor: Actor,
        denial: OrderLifecycleError,
        now: datetime,
        *,
        lost_race: bool,
    ) -> NoReturn:
        if isinstance(denial, DeadlineExpiredError):
            # Lazy detection still leaves a durable CANCELLED_AUTO behind.
            await self._try_expire(order, now)
        if lost_race and isinstance(denial, InvalidTransitionError | DeadlineExpiredError):
            denial = AlreadyResolvedError(
                f"Order {order.id} was resolved concurrently; it is now {order.status.value}.",
                order_id=order.id,
            )
        logger.info(
            "Denied %s on order %s (%s) for %s %s: %s",
            operation.value,
            order.id,
            order.status.value,
            actor.role.value,
            actor.id or "-",
            denial.code,
        )
        raise denial

    def _deny(
        self,
        order: OrderSnapshot,
        operation: OrderOperation,
        actor: Actor,
        deadline_state: DeadlineState,
    ) -> OrderLifecycleError | None:
        decision = authorize(order.status, operation, actor.role, deadline_state)
        if decision.reason == DenyReason.WRONG_ROLE:
            return WrongRoleError(
                f"A {actor.role.value} cannot {operation.value} an order.",
                order_id=order.id,
            )

        if (
            operation == OrderOperation.RATE
            and order.rating is not None
            and order.customer_id == actor.id
        ):
            return AlreadyRatedError("Order has already been rated.", order_id=order.id)
        if decision.reason == DenyReason.WRONG_STATE:
            return InvalidTransitionError(
                f"Cannot {operation.value} an order in status {order.status.value}.",
                order_id=order.id,
            )

        # After the state check: a lost race must surface as a state change.
        ownership = self._ownership_error(order, operation, actor)
        if ownership is not None:
            return ownership

        if decision.reason == DenyReason.DEADLINE_EXPIRED:
            return DeadlineExpiredError("The acceptance window has expired.", order_id=order.id)
        if operation == OrderOperation.EXTEND_DEADLINE and deadline_state != DeadlineState.ACTIVE:
            return InvalidTransitionError("Order has no acceptance deadline to extend.", order_id=order.id)
        return None

    @staticmethod
    def _ownership_error(
        order: OrderSnapshot,
        operation: OrderOperation,
        actor: Actor,
    ) -> OrderLifecycleError | None:
        if actor.role == ActorRole.CUSTOMER and order.customer_id != actor.id:
            return WrongRoleError("Actor is not this order's customer.", order_id=order.id)
        if actor.role == ActorRole.SPECIALIST:
            if order.status == OrderStatus.PENDING:
                if operation == OrderOperation.CANCEL_BY_SPECIALIST:
                    return InvalidTransitionError(
                        "No specialist is assigned to this order yet.",
                        order_id=order.id,
                    )
            elif order.specialist_id != actor.id:
                return WrongRoleError("Actor is not this order's specialist.", order_id=order.id)
        return None

    async def _commit(
        self,
        order: OrderSnapshot,
        operation: OrderOperation,
        actor: Actor,
        mutation: _Mutation,
        now: datetime,
    ) -> OrderSnapshot:
        next_version = order.version + 1
        changes = dict(mutation.changes)
        changes["updated_at"] = now
        event = self.events.build(
            order,
            mutation.event_type,
            version=next_version,
            actor_id=actor.id,
            actor_role=actor.role,
            created_at=now,
            payload={"from_status": order.status.value, **mutation.payload},
        )
        updated = await self.store.compare_and_swap(
            order.id,
            order.version,
            changes,
            event,
            rating=mutation.rating,
        )
        log_transition(
            order.id,
            order.status.value,
            updated.status.value,
            f"{operation.value} v{next_version} by {actor.role.value} {actor.id or '-'}",
        )
        await self.events.publish(updated, event)
        return updated
