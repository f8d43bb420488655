"""Request schemas for order lifecycle endpoints."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Accept camelCase JSON while keeping snake_case attributes."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def _strip_optional(value: str | None) -> str | None:
    if value is None:
        return None
    normalized = value.strip()
    return normalized or None


class CreateOrderRequest(CamelModel):
    """Open a new PENDING service order for the calling customer."""

    service_id: str = Field(min_length=1, max_length=64)
    category_slug: str | None = Field(default=None, max_length=80)
    description: str | None = Field(default=None, max_length=2000)
    address_text: str | None = Field(default=None, max_length=500)
    is_urgent: bool = False
    preferred_at: datetime | None = None
    scheduled_at: datetime | None = None
    accept_window_minutes: int | None = Field(default=None, ge=1, le=7 * 24 * 60)

    @field_validator("service_id")
    @classmethod
    def validate_service_id(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError("serviceId cannot be empty.")
        return normalized


class AcceptOrderRequest(CamelModel):
    specialist_id: str | None = Field(default=None, max_length=64)


class RescheduleOrderRequest(CamelModel):
    scheduled_at: datetime
    reason: str | None = Field(default=None, max_length=500)


class ExtendDeadlineRequest(CamelModel):
    minutes: int = Field(ge=1, le=1440)


class FinishOrderRequest(CamelModel):
    attachments: list[str] = Field(default_factory=list, max_length=20)
    note: str | None = Field(default=None, max_length=1000)


class ConfirmOrderRequest(CamelModel):
    note: str | None = Field(default=None, max_length=1000)


class RejectFinishRequest(CamelModel):
    reason: str | None = Field(default=None, max_length=500)

    @field_validator("reason")
    @classmethod
    def validate_reason(cls, value: str | None) -> str | None:
        normalized = _strip_optional(value)
        if normalized is not None and len(normalized) < 3:
            raise ValueError("reason must be at least 3 characters.")
        return normalized


class CancelOrderRequest(CamelModel):
    reason: str | None = Field(default=None, max_length=500)


class SpecialistCancelRequest(CamelModel):
    reason: str = Field(min_length=1, max_length=500)

    @field_validator("reason")
    @classmethod
    def validate_reason(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError("reason cannot be empty.")
        return normalized


class RateOrderRequest(CamelModel):
    score: int = Field(ge=1, le=5)
    comment: str | None = Field(default=None, max_length=1000)
