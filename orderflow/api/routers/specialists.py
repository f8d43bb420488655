"""Specialist-facing read endpoints."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Path

from orderflow.api.middleware.actor import get_current_actor
from orderflow.api.schemas.responses import RatingSummaryResponse
from orderflow.dependencies import get_order_engine
from orderflow.engine.lifecycle import Actor, OrderLifecycleEngine

router = APIRouter(prefix="/specialists", tags=["specialists"])


@router.get("/{specialist_id}/rating-summary", response_model=RatingSummaryResponse)
async def get_rating_summary(
    specialist_id: Annotated[str, Path(min_length=1, max_length=64)],
    _: Annotated[Actor, Depends(get_current_actor)],
    engine: Annotated[OrderLifecycleEngine, Depends(get_order_engine)],
) -> RatingSummaryResponse:
    """Rating average and count, plus how many orders the specialist dropped."""
    summary = await engine.rating_summary(specialist_id)
    return RatingSummaryResponse.from_summary(summary)
