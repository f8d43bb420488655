"""Actor identity dependency for order endpoints.

Authentication happens upstream; the gateway forwards the verified identity
as ``X-Actor-Id`` and ``X-Actor-Role`` headers.
"""

from __future__ import annotations

from typing import Annotated

from fastapi import Header, HTTPException, status

from orderflow.engine.lifecycle import Actor, ActorRole

_PUBLIC_ROLES: frozenset[ActorRole] = frozenset({ActorRole.CUSTOMER, ActorRole.SPECIALIST})
_MAX_ACTOR_ID_LENGTH = 64


def _unauthorized(message: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail={"code": "unauthenticated", "message": message},
    )


async def get_current_actor(
    x_actor_id: Annotated[str | None, Header(alias="X-Actor-Id")] = None,
    x_actor_role: Annotated[str | None, Header(alias="X-Actor-Role")] = None,
) -> Actor:
    """Resolve the calling customer or specialist from forwarded headers."""
    actor_id = (x_actor_id or "").strip()
    if not actor_id:
        raise _unauthorized("Missing X-Actor-Id header.")
    if len(actor_id) > _MAX_ACTOR_ID_LENGTH:
        raise _unauthorized("X-Actor-Id header is too long.")

    raw_role = (x_actor_role or "").strip().lower()
    if not raw_role:
        raise _unauthorized("Missing X-Actor-Role header.")
    try:
        role = ActorRole(raw_role)
    except ValueError:
        raise _unauthorized(f"Unsupported actor role '{raw_role}'.") from None
    if role not in _PUBLIC_ROLES:
        raise _unauthorized(f"Unsupported actor role '{raw_role}'.")
    return Actor(id=actor_id, role=role)
