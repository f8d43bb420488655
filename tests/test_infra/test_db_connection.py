import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from orderflow.engine.lifecycle.sql_store import SqlAlchemyOrderStore
from orderflow.models import database as db_module


@pytest.mark.asyncio
async def test_order_store_healthcheck_select_1(db_session: AsyncSession) -> None:
    store = SqlAlchemyOrderStore(db_session)

    assert await store.healthcheck() is True
    assert await db_module.postgres_healthcheck() is True


@pytest.mark.asyncio
async def test_postgres_healthcheck_false_when_closed() -> None:
    await db_module.close_postgres()

    assert await db_module.postgres_healthcheck() is False
