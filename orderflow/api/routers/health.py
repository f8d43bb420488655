"""Health-check endpoint."""

from __future__ import annotations

from fastapi import APIRouter, status
from fastapi.responses import JSONResponse

from orderflow.models.database import postgres_healthcheck

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check() -> JSONResponse:
    """Check API and order store liveness."""
    db_ok = await postgres_healthcheck()
    payload = {
        "status": "ok" if db_ok else "degraded",
        "db": db_ok,
        "services": {
            "api": "ok",
            "order_store": "ok" if db_ok else "down",
        },
    }
    return JSONResponse(
        status_code=status.HTTP_200_OK if db_ok else status.HTTP_503_SERVICE_UNAVAILABLE,
        content=payload,
    )
