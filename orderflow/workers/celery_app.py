"""Celery application bootstrap for background jobs."""

from __future__ import annotations

from datetime import timedelta

from celery import Celery
from kombu import Queue

from orderflow.config import settings
from orderflow.observability.sentry_setup import init_backend_sentry

init_backend_sentry(source="celery")

ORDERS_QUEUE = "orders"

_beat_schedule: dict[str, dict[str, object]] = {}

if settings.order_sweep_enabled:
    _beat_schedule["orders.expire_pending"] = {
        "task": "orders.expire_pending",
        "schedule": timedelta(seconds=settings.order_sweep_interval_seconds),
        "options": {
            # Drop stale sweep ticks; the next tick covers the same orders.
            "expires": max(1, int(settings.order_sweep_interval_seconds)),
        },
    }

celery_app = Celery(
    "orderflow",
    broker=settings.effective_celery_broker_url,
    backend=settings.effective_celery_result_backend,
    include=[
        "orderflow.workers.order_tasks",
    ],
)

celery_app.conf.update(
    task_default_queue=settings.celery_task_default_queue,
    task_acks_late=settings.celery_task_acks_late,
    task_reject_on_worker_lost=True,
    task_track_started=True,
    worker_prefetch_multiplier=settings.celery_worker_prefetch_multiplier,
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    task_time_limit=settings.celery_task_time_limit_seconds,
    task_soft_time_limit=settings.celery_task_soft_time_limit_seconds,
    task_always_eager=settings.celery_task_always_eager,
    broker_connection_retry_on_startup=True,
    timezone=settings.celery_timezone,
    enable_utc=settings.celery_timezone.strip().upper() == "UTC",
    beat_schedule=_beat_schedule,
    task_queues=(Queue(ORDERS_QUEUE),),
    task_routes={
        "orders.expire_pending": {"queue": ORDERS_QUEUE},
        "orders.*": {"queue": ORDERS_QUEUE},
    },
)
