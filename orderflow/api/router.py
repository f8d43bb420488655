"""Top-level API router registry."""

from __future__ import annotations

from fastapi import APIRouter

from orderflow.api.routers.health import router as health_router
from orderflow.api.routers.orders import router as orders_router
from orderflow.api.routers.specialists import router as specialists_router

api_router = APIRouter()
api_router.include_router(health_router)
api_router.include_router(orders_router)
api_router.include_router(specialists_router)
