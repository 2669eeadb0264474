"""StockLedger — Celery task running a batch operation in the background.

Every progress event is written to Redis under batch:{job_id} so the API can
serve polling clients. A batch never retries as a whole; item-level store
calls already retry rate-limited errors.
"""
from __future__ import annotations

import asyncio
import json
import logging
from uuid import UUID

import redis

from stockledger.config import get_settings
from stockledger.core.redis import batch_progress_key
from stockledger.db.session import make_engine, make_session_factory
from stockledger.services.batch_coordinator import BatchCoordinator, BatchOperation, BatchProgress
from stockledger.services.purchase_service import PurchaseDeleteMode
from stockledger.store import RetryingRecordStore, SqlRecordStore
from stockledger.worker import celery_app

logger = logging.getLogger(__name__)


def _sync_redis():
    """Sync Redis client for Celery tasks."""
    settings = get_settings()
    return redis.from_url(settings.REDIS_URL, decode_responses=True)


def publish_progress(
    r,
    job_id: str,
    tenant_id: str,
    status: str,
    progress: BatchProgress | None = None,
    error: str | None = None,
) -> None:
    r.setex(batch_progress_key(job_id), get_settings().BATCH_PROGRESS_TTL_SECONDS, json.dumps({
        "job_id": job_id,
        "tenant_id": tenant_id,
        "status": status,
        "progress": progress.to_dict() if progress else None,
        "error": error,
    }))


async def drive_batch(
    session_factory,
    tenant_id: UUID,
    operation: BatchOperation,
    item_ids: list[UUID],
    *,
    purchase_mode: PurchaseDeleteMode | None,
    acknowledge_negative: bool,
    on_progress,
) -> BatchProgress | None:
    store = RetryingRecordStore(SqlRecordStore(session_factory, tenant_id))
    final = None
    async for event in BatchCoordinator(store).run(
        operation, item_ids, purchase_mode=purchase_mode, acknowledge_negative=acknowledge_negative
    ):
        on_progress(event)
        final = event
    return final


async def _run(job_id, tenant_id_str, operation, item_ids, purchase_mode, acknowledge_negative, r):
    # One event loop per task run, so no pooled connection may outlive it.
    engine = make_engine(pooled=False)
    try:
        return await drive_batch(
            make_session_factory(engine),
            UUID(tenant_id_str),
            BatchOperation(operation),
            [UUID(i) for i in item_ids],
            purchase_mode=PurchaseDeleteMode(purchase_mode) if purchase_mode else None,
            acknowledge_negative=acknowledge_negative,
            on_progress=lambda event: publish_progress(r, job_id, tenant_id_str, "RUNNING", event),
        )
    finally:
        await engine.dispose()


@celery_app.task(bind=True, max_retries=0)
def run_batch(
    self,
    job_id: str,
    tenant_id_str: str,
    operation: str,
    item_ids: list[str],
    purchase_mode: str | None = None,
    acknowledge_negative: bool = False,
):
    """Run one batch operation and keep batch:{job_id} current (24h TTL)."""
    r = _sync_redis()
    publish_progress(r, job_id, tenant_id_str, "PENDING")
    try:
        final = asyncio.run(
            _run(job_id, tenant_id_str, operation, item_ids, purchase_mode, acknowledge_negative, r)
        )
        publish_progress(r, job_id, tenant_id_str, "COMPLETE", final)
        logger.info(
            "Batch job %s complete: %s succeeded, %s failed",
            job_id, final.success_count if final else 0, final.fail_count if final else 0,
        )
    except Exception as exc:
        logger.exception("Batch job %s failed", job_id)
        publish_progress(r, job_id, tenant_id_str, "FAILED", error=str(exc))
