"""ORM model exports."""

from orderflow.models.base import Base
from orderflow.models.order_event import OrderEventRow
from orderflow.models.order_rating import OrderRatingRow
from orderflow.models.service_order import ServiceOrder

__all__ = [
    "Base",
    "OrderEventRow",
    "OrderRatingRow",
    "ServiceOrder",
]
