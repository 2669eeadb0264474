"""StockLedger — Explicit record types exchanged with the RecordStore.

Every record crossing the store boundary is validated here, so services never
handle loosely shaped dicts.
"""
from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, model_validator

from stockledger.models.order import ImportBatchType, OrderStatus
from stockledger.models.stock import MovementType, ReferenceType, ReturnCondition


class _Record(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    tenant_id: UUID
    created_at: datetime | None = None


class SKURecord(_Record):
    sku_code: str
    name: str = ""
    cost_price: Decimal = Decimal("0")
    damaged_stock: int = Field(default=0, ge=0)


class PurchaseLotRecord(_Record):
    sku_id: UUID
    purchase_date: date
    cost_per_unit: Decimal = Field(ge=0)
    quantity_purchased: int = Field(ge=0)
    quantity_remaining: int = Field(ge=0)
    supplier_name: str | None = None
    import_batch_id: UUID | None = None
    version: int = 1

    @model_validator(mode="after")
    def _remaining_within_purchased(self) -> "PurchaseLotRecord":
        if self.quantity_remaining > self.quantity_purchased:
            raise ValueError(
                f"quantity_remaining {self.quantity_remaining} exceeds quantity_purchased {self.quantity_purchased}"
            )
        return self


class CurrentStockRecord(_Record):
    sku_id: UUID
    quantity_available: int = 0
    version: int = 1


class ImportBatchRecord(_Record):
    batch_type: ImportBatchType
    batch_name: str
    record_count: int = 0


class OrderRecord(_Record):
    order_number: str
    status: OrderStatus = OrderStatus.PENDING
    net_revenue: Decimal = Decimal("0")
    total_cost: Decimal | None = None
    profit_loss: Decimal | None = None
    profit_margin_percent: Decimal | None = None
    import_batch_id: UUID | None = None


class OrderLineRecord(_Record):
    order_id: UUID
    sku_id: UUID
    quantity: int = Field(gt=0)
    unit_cost: Decimal | None = None
    line_total_cost: Decimal | None = None
    is_returned: bool = False
    return_date: date | None = None


class StockMovementRecord(_Record):
    sku_id: UUID
    movement_type: MovementType
    quantity: int
    reference_type: ReferenceType | None = None
    reference_id: UUID | None = None
    return_condition: ReturnCondition | None = None
    movement_date: date
    notes: str | None = None
