"""StockLedger — SKU request / response schemas."""
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, Field


class SKUCreate(BaseModel):
    sku_code: str = Field(min_length=1, max_length=100)
    name: str = ""
    cost_price: Decimal = Field(default=Decimal("0"), ge=0)


class SKUResponse(BaseModel):
    id: UUID
    sku_code: str
    name: str
    cost_price: Decimal
    damaged_stock: int

    model_config = {"from_attributes": True}
