"""StockLedger — Order, cost preview and return schemas."""
from datetime import date
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, Field

from stockledger.models.order import OrderStatus
from stockledger.models.stock import ReturnCondition


class OrderLineCreate(BaseModel):
    sku_id: UUID
    quantity: int = Field(gt=0)


class OrderCreate(BaseModel):
    order_number: str = Field(min_length=1, max_length=100)
    net_revenue: Decimal = Decimal("0")
    lines: list[OrderLineCreate] = Field(min_length=1)


class OrderLineResponse(BaseModel):
    id: UUID
    sku_id: UUID
    quantity: int
    unit_cost: Decimal | None
    line_total_cost: Decimal | None
    is_returned: bool
    return_date: date | None

    model_config = {"from_attributes": True}


class OrderResponse(BaseModel):
    id: UUID
    order_number: str
    status: OrderStatus
    net_revenue: Decimal
    total_cost: Decimal | None
    profit_loss: Decimal | None
    profit_margin_percent: Decimal | None
    import_batch_id: UUID | None
    lines: list[OrderLineResponse] = Field(default_factory=list)

    model_config = {"from_attributes": True}


class LotTake(BaseModel):
    lot_id: UUID
    quantity: int
    cost_per_unit: Decimal


class LineCostPreview(BaseModel):
    line_id: UUID
    sku_id: UUID
    quantity: int
    unit_cost: Decimal
    line_cost: Decimal
    shortfall_qty: int
    consumption: list[LotTake]


class CostPreviewResponse(BaseModel):
    order_id: UUID
    total_cost: Decimal
    lines: list[LineCostPreview]


class LineReturn(BaseModel):
    line_id: UUID
    condition: ReturnCondition = ReturnCondition.SOUND


class ReturnRequest(BaseModel):
    lines: list[LineReturn] = Field(min_length=1)
    return_date: date | None = None


class OrderDeleteResponse(BaseModel):
    order_id: UUID
    restored_units: int
