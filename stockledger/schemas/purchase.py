"""StockLedger — Purchase lot request / response schemas."""
from datetime import date
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, Field

from stockledger.core.errors import IntegrityWarning


class PurchaseCreate(BaseModel):
    sku_id: UUID
    quantity: int = Field(gt=0)
    cost_per_unit: Decimal = Field(ge=0)
    purchase_date: date | None = None
    supplier_name: str | None = None


class PurchaseBulkCreate(BaseModel):
    batch_name: str = Field(min_length=1, max_length=255)
    purchases: list[PurchaseCreate] = Field(min_length=1)


class PurchaseResponse(BaseModel):
    id: UUID
    sku_id: UUID
    purchase_date: date
    cost_per_unit: Decimal
    quantity_purchased: int
    quantity_remaining: int
    supplier_name: str | None
    import_batch_id: UUID | None

    model_config = {"from_attributes": True}


class PurchaseBulkResponse(BaseModel):
    import_batch_id: UUID
    purchases: list[PurchaseResponse]


class PurchaseDeletePreview(BaseModel):
    lot_id: UUID
    sku_id: UUID
    quantity_available: int
    deduction: int
    resulting_available: int
    would_go_negative: bool

    @classmethod
    def from_warning(cls, warning: IntegrityWarning) -> "PurchaseDeletePreview":
        return cls(
            lot_id=warning.lot_id,
            sku_id=warning.sku_id,
            quantity_available=warning.quantity_available,
            deduction=warning.deduction,
            resulting_available=warning.resulting_available,
            would_go_negative=warning.would_go_negative,
        )
