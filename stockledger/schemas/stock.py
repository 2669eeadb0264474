"""StockLedger — Stock level, movement and integrity schemas."""
from datetime import date, datetime
from uuid import UUID

from pydantic import BaseModel, Field

from stockledger.models.stock import MovementType, ReferenceType, ReturnCondition


class StockLevelResponse(BaseModel):
    sku_id: UUID
    sku_code: str
    quantity_available: int
    damaged_stock: int


class MovementResponse(BaseModel):
    id: UUID
    sku_id: UUID
    movement_type: MovementType
    quantity: int
    reference_type: ReferenceType | None
    reference_id: UUID | None
    return_condition: ReturnCondition | None
    movement_date: date
    notes: str | None
    created_at: datetime | None

    model_config = {"from_attributes": True}


class SkuDriftResponse(BaseModel):
    sku_id: UUID
    sku_code: str
    quantity_available: int
    movement_total: int
    difference: int


class IntegrityReportResponse(BaseModel):
    ok: bool
    drifts: list[SkuDriftResponse] = Field(default_factory=list)
    negative_stock: list[dict] = Field(default_factory=list)
    unbooked_orders: list[dict] = Field(default_factory=list)


class ReconcileRequest(BaseModel):
    sku_ids: list[UUID] | None = None
    notes: str | None = None
