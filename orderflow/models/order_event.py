"""Append-only audit rows for service order lifecycle events."""

from __future__ import annotations

from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import ForeignKey, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from orderflow.models.base import Base, JSONType

if TYPE_CHECKING:
    from orderflow.models.service_order import ServiceOrder


class OrderEventRow(Base):
    """Persisted lifecycle event for one order; one row per accepted mutation."""

    __tablename__ = "order_events"
    __table_args__ = (
        UniqueConstraint("order_id", "version", name="uq_order_events_order_version"),
        Index("ix_order_events_order_created_at", "order_id", "created_at"),
    )

    order_id: Mapped[UUID] = mapped_column(
        ForeignKey("service_orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    type: Mapped[str] = mapped_column(String(40), nullable=False)
    version: Mapped[int] = mapped_column(Integer, nullable=False)
    actor_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    actor_role: Mapped[str] = mapped_column(String(20), nullable=False)
    payload: Mapped[dict] = mapped_column(JSONType, nullable=False, default=dict)

    order: Mapped[ServiceOrder] = relationship(back_populates="events")
