"""StockLedger — Purchase lot model."""
import uuid
from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import CheckConstraint, Date, DateTime, ForeignKey, Integer, Numeric, String, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from stockledger.db.base import Base
from stockledger.models.tenant import utcnow


class PurchaseLot(Base):
    """
    A quantity bought at a unit cost on a date, consumed oldest-first.

    quantity_purchased never changes after creation; quantity_remaining is
    written only by the ledger writer and guarded by ``version``.
    """

    __tablename__ = "purchases"
    __table_args__ = (
        CheckConstraint(
            "quantity_remaining >= 0 AND quantity_remaining <= quantity_purchased",
            name="ck_purchases_remaining_bounds",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    tenant_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("tenants.id", ondelete="CASCADE"), index=True)
    sku_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("skus.id", ondelete="RESTRICT"), index=True)
    purchase_date: Mapped[date] = mapped_column(Date, nullable=False)
    cost_per_unit: Mapped[Decimal] = mapped_column(Numeric(18, 4), nullable=False)
    quantity_purchased: Mapped[int] = mapped_column(Integer, nullable=False)
    quantity_remaining: Mapped[int] = mapped_column(Integer, nullable=False)
    supplier_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    import_batch_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("import_batches.id", ondelete="SET NULL"), nullable=True, index=True
    )
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, server_default=func.now())
