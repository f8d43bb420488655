"""Service order row: the persisted lifecycle state of one work request."""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, CheckConstraint, Index, Integer, String, Text, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from orderflow.engine.lifecycle.states import OrderStatus
from orderflow.models.base import Base, UTCDateTime

if TYPE_CHECKING:
    from orderflow.models.order_event import OrderEventRow
    from orderflow.models.order_rating import OrderRatingRow

_STATUS_VALUES = ", ".join(f"'{status.value}'" for status in OrderStatus)


class ServiceOrder(Base):
    """One customer work request and its current lifecycle status."""

    __tablename__ = "service_orders"
    __table_args__ = (
        CheckConstraint(f"status IN ({_STATUS_VALUES})", name="ck_service_orders_status"),
        CheckConstraint("version >= 0", name="ck_service_orders_version_non_negative"),
        Index("ix_service_orders_customer_status", "customer_id", "status"),
        Index("ix_service_orders_specialist_status", "specialist_id", "status"),
        Index("ix_service_orders_status_deadline", "status", "accept_deadline_at"),
    )

    status: Mapped[str] = mapped_column(
        String(40),
        nullable=False,
        default=OrderStatus.PENDING.value,
        server_default=OrderStatus.PENDING.value,
    )
    customer_id: Mapped[str] = mapped_column(String(64), nullable=False)
    specialist_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    service_id: Mapped[str] = mapped_column(String(64), nullable=False)
    category_slug: Mapped[str | None] = mapped_column(String(80), nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    address_text: Mapped[str | None] = mapped_column(String(500), nullable=True)
    is_urgent: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        server_default=text("false"),
    )
    preferred_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    scheduled_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    accept_deadline_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default=text("0"))

    events: Mapped[list[OrderEventRow]] = relationship(
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderEventRow.version",
        lazy="raise",
    )
    rating: Mapped[OrderRatingRow | None] = relationship(
        back_populates="order",
        cascade="all, delete-orphan",
        uselist=False,
        lazy="raise",
    )
