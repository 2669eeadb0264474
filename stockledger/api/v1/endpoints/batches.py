"""StockLedger — Batch endpoints: live NDJSON progress stream, background job, job polling."""
import json
import uuid

from fastapi import APIRouter, status
from fastapi.responses import StreamingResponse

from stockledger.api.deps import Store, TenantId
from stockledger.core.redis import batch_progress_key, get_redis
from stockledger.schemas.batch import BatchJobResponse, BatchRequest
from stockledger.schemas.common import ApiResponse
from stockledger.services.batch_coordinator import BatchCoordinator

router = APIRouter()


@router.post("/stream")
async def stream_batch(body: BatchRequest, store: Store):
    """Run the batch in this request; one JSON progress event per line, the last with completed=true."""
    BatchCoordinator.validate_request(body.operation, body.purchase_mode)
    coordinator = BatchCoordinator(store)

    async def events():
        async for event in coordinator.run(
            body.operation,
            body.item_ids,
            purchase_mode=body.purchase_mode,
            acknowledge_negative=body.acknowledge_negative,
        ):
            yield json.dumps(event.to_dict()) + "\n"

    return StreamingResponse(events(), media_type="application/x-ndjson")


@router.post("", response_model=ApiResponse[BatchJobResponse], status_code=status.HTTP_202_ACCEPTED)
async def enqueue_batch(body: BatchRequest, tenant_id: TenantId):
    """Enqueue the batch on the worker. Returns job_id for polling."""
    from stockledger.tasks.batch_tasks import run_batch

    BatchCoordinator.validate_request(body.operation, body.purchase_mode)
    job_id = str(uuid.uuid4())
    run_batch.delay(
        job_id,
        str(tenant_id),
        body.operation.value,
        [str(i) for i in body.item_ids],
        body.purchase_mode.value if body.purchase_mode else None,
        body.acknowledge_negative,
    )
    return ApiResponse(data=BatchJobResponse(job_id=job_id, status="PENDING"))


@router.get("/{job_id}", response_model=ApiResponse[BatchJobResponse])
async def get_batch(job_id: str, tenant_id: TenantId):
    """Latest progress of a background batch."""
    r = await get_redis()
    raw = await r.get(batch_progress_key(job_id))
    if not raw:
        return ApiResponse(data=BatchJobResponse(job_id=job_id, status="PENDING"))
    info = json.loads(raw)
    if info.get("tenant_id") != str(tenant_id):
        return ApiResponse(data=BatchJobResponse(job_id=job_id, status="PENDING"))
    return ApiResponse(data=BatchJobResponse(
        job_id=job_id,
        status=info["status"],
        progress=info.get("progress"),
        error=info.get("error"),
    ))
