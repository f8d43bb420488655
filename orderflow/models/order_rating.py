"""Customer rating left on a confirmed service order."""

from __future__ import annotations

from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import CheckConstraint, ForeignKey, SmallInteger, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from orderflow.models.base import Base

if TYPE_CHECKING:
    from orderflow.models.service_order import ServiceOrder


class OrderRatingRow(Base):
    """At most one rating per order, enforced by the unique ``order_id``."""

    __tablename__ = "order_ratings"
    __table_args__ = (
        CheckConstraint("score BETWEEN 1 AND 5", name="ck_order_ratings_score_range"),
    )

    order_id: Mapped[UUID] = mapped_column(
        ForeignKey("service_orders.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    specialist_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    reviewer_id: Mapped[str] = mapped_column(String(64), nullable=False)
    score: Mapped[int] = mapped_column(SmallInteger, nullable=False)
    comment: Mapped[str | None] = mapped_column(Text, nullable=True)

    order: Mapped[ServiceOrder] = relationship(back_populates="rating")
