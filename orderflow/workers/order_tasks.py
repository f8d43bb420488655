"""Celery tasks for the service-order acceptance-window sweep."""

from __future__ import annotations

import asyncio
from typing import Any

from orderflow.config import settings
from orderflow.engine.lifecycle import OrderLifecycleEngine
from orderflow.engine.lifecycle.sql_store import SqlAlchemyOrderStore
from orderflow.models import database as db_module
from orderflow.util.logger import log_error, logger
from orderflow.workers.celery_app import celery_app


async def _run_expire_pending(*, limit: int) -> dict[str, Any]:
    # Forked workers must not reuse a pool created in the parent process.
    await db_module.close_postgres()

    try:
        await db_module.init_postgres(ensure_schema=False)
        assert db_module.AsyncSessionLocal is not None
        async with db_module.AsyncSessionLocal() as session:
            engine = OrderLifecycleEngine(SqlAlchemyOrderStore(session))
            stats = await engine.sweep_expired(limit=limit)
            return {"status": "ok", **stats.to_dict()}
    except Exception as exc:
        log_error("Order expiry sweep failed.", exc)
        raise
    finally:
        await db_module.close_postgres()


@celery_app.task(name="orders.expire_pending")
def expire_pending_orders_task(limit: int | None = None) -> dict[str, Any]:
    """Cancel PENDING orders whose acceptance window has passed."""
    if not settings.order_sweep_enabled:
        return {"status": "disabled", "picked": 0, "expired": 0, "skipped": 0}
    safe_limit = max(1, int(limit or settings.order_sweep_batch_size))
    logger.debug("[orders-worker] expire pending limit=%s", safe_limit)
    return asyncio.run(_run_expire_pending(limit=safe_limit))
