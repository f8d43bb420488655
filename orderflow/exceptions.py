"""Domain-layer exceptions shared across the API, workers and the engine."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, ClassVar


@dataclass(slots=True)
class DomainError(Exception):
    """Framework-agnostic domain exception carrying HTTP-like error metadata."""

    status_code: int
    code: str
    message: str

    @property
    def detail(self) -> dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
        }

    def __str__(self) -> str:
        return f"{self.code}: {self.message}"


class OrderLifecycleError(DomainError):
    """Typed denial of one order operation.

    Subclasses pin ``code`` and ``status_code`` so callers (and the
    notification collaborators reading the event stream) can branch on the
    kind without parsing messages.
    """

    kind: ClassVar[str] = "order_error"
    http_status: ClassVar[int] = 409

    def __init__(self, message: str = "", *, order_id: object | None = None) -> None:
        DomainError.__init__(
            self,
            status_code=self.http_status,
            code=self.kind,
            message=message or self.kind.replace("_", " "),
        )
        self.order_id = str(order_id) if order_id is not None else None

    @property
    def detail(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "code": self.code,
            "message": self.message,
        }
        if self.order_id is not None:
            payload["order_id"] = self.order_id
        return payload


class InvalidTransitionError(OrderLifecycleError):
    kind = "invalid_transition"
    http_status = 409


class WrongRoleError(OrderLifecycleError):
    kind = "wrong_role"
    http_status = 403


class DeadlineExpiredError(OrderLifecycleError):
    kind = "deadline_expired"
    http_status = 409


class AlreadyResolvedError(OrderLifecycleError):
    kind = "already_resolved"
    http_status = 409


class AlreadyRatedError(OrderLifecycleError):
    kind = "already_rated"
    http_status = 409


class OrderNotFoundError(OrderLifecycleError):
    kind = "not_found"
    http_status = 404


class OrderValidationError(DomainError):
    """Payload accepted by the schema but rejected by a lifecycle rule."""

    def __init__(self, code: str, message: str) -> None:
        DomainError.__init__(self, status_code=422, code=code, message=message)
