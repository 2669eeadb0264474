"""StockLedger — Stock endpoints: levels, movement history, integrity check and reconcile."""
from datetime import date
from uuid import UUID

from fastapi import APIRouter, Query

from stockledger.api.deps import Store
from stockledger.models.stock import MovementType
from stockledger.schemas.common import ApiResponse, Meta
from stockledger.schemas.stock import (
    IntegrityReportResponse,
    MovementResponse,
    ReconcileRequest,
    SkuDriftResponse,
    StockLevelResponse,
)
from stockledger.services.integrity_service import IntegrityService, SkuDrift
from stockledger.store.base import Collection

router = APIRouter()


def _drift(d: SkuDrift) -> SkuDriftResponse:
    return SkuDriftResponse(
        sku_id=d.sku_id,
        sku_code=d.sku_code,
        quantity_available=d.quantity_available,
        movement_total=d.movement_total,
        difference=d.difference,
    )


@router.get("", response_model=ApiResponse[list[StockLevelResponse]])
async def list_stock(store: Store):
    """Available and damaged stock per SKU."""
    rows = {row.sku_id: row for row in await store.list(Collection.CURRENT_STOCK)}
    skus = sorted(await store.list(Collection.SKUS), key=lambda s: s.sku_code)
    data = [
        StockLevelResponse(
            sku_id=sku.id,
            sku_code=sku.sku_code,
            quantity_available=rows[sku.id].quantity_available if sku.id in rows else 0,
            damaged_stock=sku.damaged_stock,
        )
        for sku in skus
    ]
    return ApiResponse(data=data, meta=Meta(total_count=len(data)))


@router.get("/movements", response_model=ApiResponse[list[MovementResponse]])
async def list_movements(
    store: Store,
    sku_id: UUID | None = None,
    movement_type: MovementType | None = None,
    date_from: date | None = None,
    date_to: date | None = None,
    limit: int = Query(200, ge=1, le=1000),
):
    """Movement ledger, newest first."""
    filters = {}
    if sku_id:
        filters["sku_id"] = sku_id
    if movement_type:
        filters["movement_type"] = movement_type
    movements = await store.list(Collection.STOCK_MOVEMENTS, filters)
    if date_from:
        movements = [m for m in movements if m.movement_date >= date_from]
    if date_to:
        movements = [m for m in movements if m.movement_date <= date_to]
    movements.reverse()
    return ApiResponse(
        data=[MovementResponse.model_validate(m) for m in movements[:limit]],
        meta=Meta(total_count=len(movements)),
    )


@router.get("/integrity", response_model=ApiResponse[IntegrityReportResponse])
async def check_integrity(store: Store):
    report = await IntegrityService.check(store)
    return ApiResponse(data=IntegrityReportResponse(
        ok=report.ok,
        drifts=[_drift(d) for d in report.drifts],
        negative_stock=report.negative_stock,
        unbooked_orders=report.unbooked_orders,
    ))


@router.post("/reconcile", response_model=ApiResponse[list[SkuDriftResponse]])
async def reconcile(body: ReconcileRequest, store: Store):
    """Reset CurrentStock to the movement total for the given SKUs, or every drifted SKU."""
    if body.sku_ids:
        drifts = [await IntegrityService.reconcile(store, sku_id, notes=body.notes) for sku_id in body.sku_ids]
    else:
        drifts = await IntegrityService.reconcile_all(store)
    return ApiResponse(data=[_drift(d) for d in drifts if d.difference])
