"""SQLAlchemy-backed order store.

The compare-and-swap is a single conditional ``UPDATE ... WHERE id = :id AND
version = :expected``; the event row (and the rating row, for ``rate``) are
written in the same transaction, so a conflicting writer leaves no trace.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import func, select, text, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from orderflow.engine.lifecycle.records import OrderEvent, OrderRating, OrderSnapshot, RatingSummary
from orderflow.engine.lifecycle.states import ActorRole, EventType, OrderStatus, parse_status
from orderflow.engine.lifecycle.store import VersionConflict, validate_changes
from orderflow.models.order_event import OrderEventRow
from orderflow.models.order_rating import OrderRatingRow
from orderflow.models.service_order import ServiceOrder
from orderflow.util.logger import log_db, logger


def _to_column_value(value: Any) -> Any:
    if isinstance(value, OrderStatus):
        return value.value
    return value


def _rating_from_row(row: OrderRatingRow | None) -> OrderRating | None:
    if row is None:
        return None
    return OrderRating(
        score=int(row.score),
        comment=row.comment,
        reviewer_id=row.reviewer_id,
        created_at=row.created_at,
    )


def _snapshot_from_row(row: ServiceOrder, rating: OrderRatingRow | None) -> OrderSnapshot:
    return OrderSnapshot(
        id=row.id,
        status=parse_status(row.status),
        customer_id=row.customer_id,
        specialist_id=row.specialist_id,
        service_id=row.service_id,
        category_slug=row.category_slug,
        description=row.description,
        address_text=row.address_text,
        is_urgent=bool(row.is_urgent),
        preferred_at=row.preferred_at,
        scheduled_at=row.scheduled_at,
        accept_deadline_at=row.accept_deadline_at,
        version=int(row.version),
        rating=_rating_from_row(rating),
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _event_from_row(row: OrderEventRow) -> OrderEvent:
    return OrderEvent(
        id=row.id,
        order_id=row.order_id,
        type=EventType(row.type),
        version=int(row.version),
        actor_id=row.actor_id,
        actor_role=ActorRole(row.actor_role),
        created_at=row.created_at,
        payload=dict(row.payload or {}),
    )


def _event_row(event: OrderEvent) -> OrderEventRow:
    return OrderEventRow(
        id=event.id,
        order_id=event.order_id,
        type=event.type.value,
        version=event.version,
        actor_id=event.actor_id,
        actor_role=event.actor_role.value,
        payload=dict(event.payload),
        created_at=event.created_at,
        updated_at=event.created_at,
    )


def _order_query():
    return (
        select(ServiceOrder, OrderRatingRow)
        .outerjoin(OrderRatingRow, OrderRatingRow.order_id == ServiceOrder.id)
        .execution_options(populate_existing=True)
    )


class SqlAlchemyOrderStore:
    """Order store over one ``AsyncSession``; commits once per mutation."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def insert(self, order: OrderSnapshot, event: OrderEvent) -> OrderSnapshot:
        row = ServiceOrder(
            id=order.id,
            status=order.status.value,
            customer_id=order.customer_id,
            specialist_id=order.specialist_id,
            service_id=order.service_id,
            category_slug=order.category_slug,
            description=order.description,
            address_text=order.address_text,
            is_urgent=order.is_urgent,
            preferred_at=order.preferred_at,
            scheduled_at=order.scheduled_at,
            accept_deadline_at=order.accept_deadline_at,
            version=order.version,
            created_at=order.created_at,
            updated_at=order.updated_at,
        )
        self.db.add(row)
        # Parent row must exist before the event row references it.
        await self.db.flush()
        self.db.add(_event_row(event))
        try:
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise
        return order

    async def get(self, order_id: UUID) -> OrderSnapshot | None:
        result = await self.db.execute(_order_query().where(ServiceOrder.id == order_id))
        found = result.first()
        if found is None:
            return None
        row, rating = found
        return _snapshot_from_row(row, rating)

    async def list_events(self, order_id: UUID) -> list[OrderEvent]:
        rows = (
            await self.db.scalars(
                select(OrderEventRow)
                .where(OrderEventRow.order_id == order_id)
                .order_by(OrderEventRow.version.asc()),
            )
        ).all()
        return [_event_from_row(row) for row in rows]

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
        values = {key: _to_column_value(value) for key, value in changes.items()}
        values["version"] = expected_version + 1

        try:
            result = await self.db.execute(
                update(ServiceOrder)
                .where(
                    ServiceOrder.id == order_id,
                    ServiceOrder.version == expected_version,
                )
                .values(**values)
                .execution_options(synchronize_session=False),
            )
            if result.rowcount != 1:
                await self.db.rollback()
                actual = await self._current_version(order_id)
                logger.debug(
                    "CAS conflict on order %s: expected v%s, found v%s.",
                    order_id,
                    expected_version,
                    actual,
                )
                raise VersionConflict(order_id, expected_version, actual)

            self.db.add(_event_row(event))
            if rating is not None:
                specialist_id = changes.get("specialist_id")
                if specialist_id is None:
                    specialist_id = await self.db.scalar(
                        select(ServiceOrder.specialist_id).where(ServiceOrder.id == order_id),
                    )
                self.db.add(
                    OrderRatingRow(
                        order_id=order_id,
                        specialist_id=specialist_id,
                        reviewer_id=rating.reviewer_id,
                        score=rating.score,
                        comment=rating.comment,
                        created_at=rating.created_at,
                        updated_at=rating.created_at,
                    ),
                )
            await self.db.commit()
            log_db("cas", f"order={order_id} v{expected_version} -> v{expected_version + 1}")
        except IntegrityError as exc:
            # A unique (order_id, version) or order_id rating collision means
            # another writer committed first.
            await self.db.rollback()
            raise VersionConflict(order_id, expected_version) from exc
        except VersionConflict:
            raise
        except Exception:
            await self.db.rollback()
            raise

        snapshot = await self.get(order_id)
        assert snapshot is not None
        return snapshot

    async def _current_version(self, order_id: UUID) -> int | None:
        return await self.db.scalar(select(ServiceOrder.version).where(ServiceOrder.id == order_id))

    async def list_for_actor(
        self,
        *,
        actor_id: str,
        role: ActorRole,
        statuses: Iterable[OrderStatus],
        limit: int,
    ) -> list[OrderSnapshot]:
        owner_column = ServiceOrder.customer_id if role == ActorRole.CUSTOMER else ServiceOrder.specialist_id
        status_values = [status.value for status in statuses]
        result = await self.db.execute(
            _order_query()
            .where(owner_column == actor_id, ServiceOrder.status.in_(status_values))
            .order_by(ServiceOrder.created_at.desc(), ServiceOrder.id.desc())
            .limit(limit),
        )
        return [_snapshot_from_row(row, rating) for row, rating in result.all()]

    async def list_expired_pending(self, now: datetime, *, limit: int) -> list[OrderSnapshot]:
        result = await self.db.execute(
            _order_query()
            .where(
                ServiceOrder.status == OrderStatus.PENDING.value,
                ServiceOrder.accept_deadline_at.is_not(None),
                ServiceOrder.accept_deadline_at <= now,
            )
            .order_by(ServiceOrder.accept_deadline_at.asc())
            .limit(limit),
        )
        return [_snapshot_from_row(row, rating) for row, rating in result.all()]

    async def rating_summary(self, specialist_id: str) -> RatingSummary:
        row = (
            await self.db.execute(
                select(func.avg(OrderRatingRow.score), func.count(OrderRatingRow.id)).where(
                    OrderRatingRow.specialist_id == specialist_id,
                ),
            )
        ).one()
        average, count = row
        cancelled = await self.db.scalar(
            select(func.count(ServiceOrder.id)).where(
                ServiceOrder.specialist_id == specialist_id,
                ServiceOrder.status == OrderStatus.CANCELLED_BY_SPECIALIST.value,
            ),
        )
        return RatingSummary(
            specialist_id=specialist_id,
            average=round(float(average), 2) if average is not None else None,
            count=int(count or 0),
            cancelled_count=int(cancelled or 0),
        )

    async def healthcheck(self) -> bool:
        try:
            await self.db.execute(text("SELECT 1"))
            return True
        except Exception:
            logger.exception("Order store health check failed.")
            return False
