from __future__ import annotations

import os
import sys
import tempfile
from collections.abc import AsyncIterator
from datetime import UTC, datetime
from pathlib import Path

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

# Settings are read at import time; point them at a throwaway SQLite file
# before anything imports orderflow.config.
_TEST_DB_PATH = Path(tempfile.gettempdir()) / f"orderflow_test_{os.getpid()}.sqlite3"
os.environ.setdefault("DATABASE_URL", f"sqlite+aiosqlite:///{_TEST_DB_PATH}")
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("SENTRY_DSN", "")
os.environ.setdefault("CELERY_TASK_ALWAYS_EAGER", "true")

from orderflow.engine.lifecycle import (  # noqa: E402
    FrozenClock,
    InMemoryOrderStore,
    OrderEventLog,
    OrderLifecycleEngine,
)
from orderflow.models import database as db_module  # noqa: E402

T0 = datetime(2026, 3, 2, 9, 0, tzinfo=UTC)


@pytest_asyncio.fixture
async def db_session() -> AsyncIterator[AsyncSession]:
    await db_module.close_postgres()
    await db_module.init_db(drop_existing=True)
    assert db_module.AsyncSessionLocal is not None
    async with db_module.AsyncSessionLocal() as session:
        yield session
    await db_module.close_postgres()


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock(T0)


@pytest.fixture
def store() -> InMemoryOrderStore:
    return InMemoryOrderStore()


@pytest.fixture
def event_log() -> OrderEventLog:
    return OrderEventLog()


@pytest.fixture
def engine(store: InMemoryOrderStore, clock: FrozenClock, event_log: OrderEventLog) -> OrderLifecycleEngine:
    return OrderLifecycleEngine(
        store,
        clock=clock,
        events=event_log,
        close_on_rating=True,
        max_attempts=3,
        accept_deadline_enabled=True,
    )
