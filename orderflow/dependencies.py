"""FastAPI dependency providers."""

from __future__ import annotations

from collections.abc import AsyncIterator

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from orderflow.engine.lifecycle import Clock, OrderEventLog, OrderLifecycleEngine, SystemClock
from orderflow.engine.lifecycle.sql_store import SqlAlchemyOrderStore
from orderflow.models.database import get_db_session

# Process-wide so listeners registered at startup see every request's events.
order_event_log = OrderEventLog()
_system_clock = SystemClock()


async def get_db() -> AsyncIterator[AsyncSession]:
    async for session in get_db_session():
        yield session


def get_event_log() -> OrderEventLog:
    return order_event_log


def get_clock() -> Clock:
    return _system_clock


async def get_order_engine(
    db: AsyncSession = Depends(get_db),
    events: OrderEventLog = Depends(get_event_log),
    clock: Clock = Depends(get_clock),
) -> OrderLifecycleEngine:
    return OrderLifecycleEngine(SqlAlchemyOrderStore(db), clock=clock, events=events)
