"""StockLedger — Purchase lot endpoints: receive, bulk import, delete with stock consent."""
from uuid import UUID

from fastapi import APIRouter, Query, status

from stockledger.api.deps import Store
from stockledger.schemas.common import ApiResponse
from stockledger.schemas.purchase import (
    PurchaseBulkCreate,
    PurchaseBulkResponse,
    PurchaseCreate,
    PurchaseDeletePreview,
    PurchaseResponse,
)
from stockledger.services.purchase_service import PurchaseDeleteMode, PurchaseService

router = APIRouter()


@router.post("", response_model=ApiResponse[PurchaseResponse], status_code=status.HTTP_201_CREATED)
async def create_purchase(body: PurchaseCreate, store: Store):
    lot = await PurchaseService.record_purchase(
        store,
        body.sku_id,
        body.quantity,
        body.cost_per_unit,
        purchase_date=body.purchase_date,
        supplier_name=body.supplier_name,
    )
    return ApiResponse(data=PurchaseResponse.model_validate(lot))


@router.post("/bulk", response_model=ApiResponse[PurchaseBulkResponse], status_code=status.HTTP_201_CREATED)
async def import_purchases(body: PurchaseBulkCreate, store: Store):
    """Create many lots under one import batch."""
    batch, lots = await PurchaseService.import_purchases(
        store, body.batch_name, [p.model_dump() for p in body.purchases]
    )
    return ApiResponse(data=PurchaseBulkResponse(
        import_batch_id=batch.id,
        purchases=[PurchaseResponse.model_validate(lot) for lot in lots],
    ))


@router.get("/{id}/delete-preview", response_model=ApiResponse[PurchaseDeletePreview])
async def preview_delete(id: UUID, store: Store):
    """Stock effect of deleting the lot with mode=deduct."""
    warning = await PurchaseService.preview_purchase_delete(store, id)
    return ApiResponse(data=PurchaseDeletePreview.from_warning(warning))


@router.delete("/{id}", response_model=ApiResponse[PurchaseDeletePreview])
async def delete_purchase(
    id: UUID,
    store: Store,
    mode: PurchaseDeleteMode = Query(...),
    acknowledge_negative: bool = False,
):
    """409 with the warning payload when deduct would drive stock negative without acknowledgement."""
    warning = await PurchaseService.delete_purchase(
        store, id, mode=mode, acknowledge_negative=acknowledge_negative
    )
    return ApiResponse(data=PurchaseDeletePreview.from_warning(warning))
