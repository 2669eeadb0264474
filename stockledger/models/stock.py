"""StockLedger — CurrentStock aggregate and append-only StockMovement ledger."""
import uuid
from datetime import date, datetime
from enum import Enum

from sqlalchemy import Date, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from stockledger.db.base import Base
from stockledger.models.tenant import utcnow


class MovementType(str, Enum):
    PURCHASE = "purchase"
    ORDER_FULFILLMENT = "order_fulfillment"
    RETURN = "return"
    BATCH_DELETE = "batch_delete"
    MANUAL = "manual"


class ReferenceType(str, Enum):
    ORDER_LINE = "order_line"
    PURCHASE = "purchase"
    IMPORT_BATCH = "import_batch"
    MANUAL = "manual"


class ReturnCondition(str, Enum):
    SOUND = "sound"
    DAMAGED = "damaged"
    MISSING = "missing"


class CurrentStock(Base):
    """One row per (tenant, sku). quantity_available is signed."""

    __tablename__ = "current_stock"
    __table_args__ = (UniqueConstraint("tenant_id", "sku_id", name="uq_current_stock_tenant_sku"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    tenant_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("tenants.id", ondelete="CASCADE"), index=True)
    sku_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("skus.id", ondelete="CASCADE"))
    quantity_available: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow, server_default=func.now()
    )


class StockMovement(Base):
    """Append-only stock ledger. Only an explicit return undo deletes a row."""

    __tablename__ = "stock_movements"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    tenant_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("tenants.id", ondelete="CASCADE"), index=True)
    sku_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("skus.id", ondelete="CASCADE"), index=True)
    movement_type: Mapped[str] = mapped_column(String(30), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    reference_type: Mapped[str | None] = mapped_column(String(30), nullable=True)
    reference_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True, index=True)
    return_condition: Mapped[str | None] = mapped_column(String(20), nullable=True)
    movement_date: Mapped[date] = mapped_column(Date, nullable=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, server_default=func.now())
