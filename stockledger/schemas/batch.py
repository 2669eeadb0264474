"""StockLedger — Batch operation schemas."""
from uuid import UUID

from pydantic import BaseModel, Field

from stockledger.services.batch_coordinator import BatchOperation
from stockledger.services.purchase_service import PurchaseDeleteMode


class BatchRequest(BaseModel):
    operation: BatchOperation
    item_ids: list[UUID] = Field(min_length=1)
    purchase_mode: PurchaseDeleteMode | None = None
    acknowledge_negative: bool = False


class BatchLogEntryResponse(BaseModel):
    label: str
    success: bool
    error: str | None = None
    code: str | None = None


class BatchProgressResponse(BaseModel):
    total: int
    current: int
    success_count: int
    fail_count: int
    completed: bool
    log: list[BatchLogEntryResponse] = Field(default_factory=list)
    stock_shortages: list[dict] = Field(default_factory=list)


class BatchJobResponse(BaseModel):
    job_id: str
    status: str
    progress: BatchProgressResponse | None = None
    error: str | None = None
