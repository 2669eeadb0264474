"""StockLedger — Celery worker configuration."""
from celery import Celery

from stockledger.config import get_settings
from stockledger.core.logging import configure_logging

settings = get_settings()
configure_logging()

celery_app = Celery(
    "stockledger",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.REDIS_URL,
    include=["stockledger.tasks.batch_tasks"],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    # A batch must not run twice: the item writes are not idempotent.
    task_acks_late=False,
    worker_prefetch_multiplier=1,
    result_expires=settings.BATCH_PROGRESS_TTL_SECONDS,
    task_routes={
        "stockledger.tasks.batch_tasks.*": {"queue": "batches"},
    },
)
