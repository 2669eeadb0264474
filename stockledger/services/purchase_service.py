"""StockLedger — PurchaseService: booking purchase lots in and deleting them with explicit stock consent."""
import logging
from datetime import date
from decimal import Decimal
from enum import Enum
from uuid import UUID

from stockledger.core.errors import IntegrityWarning, IntegrityWarningError, NotFoundError, ValidationError
from stockledger.models.order import ImportBatchType
from stockledger.models.stock import MovementType, ReferenceType
from stockledger.schemas.records import ImportBatchRecord, PurchaseLotRecord
from stockledger.services.ledger_writer import StockLedgerWriter
from stockledger.store.base import Collection, RecordStore

logger = logging.getLogger(__name__)


class PurchaseDeleteMode(str, Enum):
    DEDUCT = "deduct"   # remove the lot's remaining units from available stock
    KEEP = "keep"       # delete the record only


class PurchaseService:
    """Purchase lot lifecycle."""

    @staticmethod
    async def get_lot(store: RecordStore, lot_id: UUID) -> PurchaseLotRecord:
        lot = await store.get(Collection.PURCHASES, lot_id)
        if lot is None:
            raise NotFoundError("purchases", lot_id)
        return lot

    @staticmethod
    def _lot_row(
        sku_id: UUID,
        quantity: int,
        cost_per_unit: Decimal,
        purchase_date: date,
        supplier_name: str | None,
        import_batch_id: UUID | None,
    ) -> dict:
        return {
            "sku_id": sku_id,
            "quantity_purchased": quantity,
            "cost_per_unit": Decimal(str(cost_per_unit)),
            "purchase_date": purchase_date,
            "supplier_name": supplier_name,
            "import_batch_id": import_batch_id,
        }

    @staticmethod
    async def record_purchase(
        store: RecordStore,
        sku_id: UUID,
        quantity: int,
        cost_per_unit: Decimal,
        *,
        purchase_date: date | None = None,
        supplier_name: str | None = None,
    ) -> PurchaseLotRecord:
        """Create one lot and book its units into available stock."""
        if await store.get(Collection.SKUS, sku_id) is None:
            raise NotFoundError("skus", sku_id)
        row = PurchaseService._lot_row(
            sku_id, quantity, cost_per_unit, purchase_date or date.today(), supplier_name, None
        )
        created, result = await StockLedgerWriter.receive_purchases(store, [row])
        result.raise_for_error()
        return created[0]

    @staticmethod
    async def import_purchases(
        store: RecordStore, batch_name: str, purchases: list[dict]
    ) -> tuple[ImportBatchRecord, list[PurchaseLotRecord]]:
        """
        Bulk upload of lots under one ImportBatch.

        Each dict carries sku_id, quantity, cost_per_unit and optionally
        purchase_date / supplier_name. Every row is checked before anything
        is written.
        """
        if not purchases:
            raise ValidationError("Import contains no purchases")
        for sku_id in {p["sku_id"] for p in purchases}:
            if await store.get(Collection.SKUS, sku_id) is None:
                raise NotFoundError("skus", sku_id)

        rows = [
            PurchaseService._lot_row(
                p["sku_id"],
                p["quantity"],
                p["cost_per_unit"],
                p.get("purchase_date") or date.today(),
                p.get("supplier_name"),
                None,
            )
            for p in purchases
        ]
        for row in rows:
            StockLedgerWriter.validate_lot_row(row)

        batch = await store.create(Collection.IMPORT_BATCHES, {
            "batch_type": ImportBatchType.PURCHASES,
            "batch_name": batch_name,
            "record_count": len(purchases),
        })
        rows = [{**row, "import_batch_id": batch.id} for row in rows]
        created, result = await StockLedgerWriter.receive_purchases(store, rows)
        result.raise_for_error()
        logger.info("Imported %s purchase lots into batch %s", len(created), batch.id)
        return batch, created

    @staticmethod
    async def preview_purchase_delete(store: RecordStore, lot_id: UUID) -> IntegrityWarning:
        """What a ``deduct`` delete would do to available stock."""
        lot = await PurchaseService.get_lot(store, lot_id)
        stock = await store.first(Collection.CURRENT_STOCK, {"sku_id": lot.sku_id})
        available = stock.quantity_available if stock else 0
        return IntegrityWarning(
            lot_id=lot.id,
            sku_id=lot.sku_id,
            quantity_available=available,
            deduction=lot.quantity_remaining,
            resulting_available=available - lot.quantity_remaining,
        )

    @staticmethod
    async def delete_purchase(
        store: RecordStore,
        lot_id: UUID,
        *,
        mode: PurchaseDeleteMode,
        acknowledge_negative: bool = False,
    ) -> IntegrityWarning:
        """
        Delete a lot.

        ``deduct`` takes the lot's remaining units out of CurrentStock with a
        ``batch_delete`` movement first. When that would leave stock negative
        nothing is written and IntegrityWarningError is raised, unless the
        caller passes ``acknowledge_negative``.
        """
        mode = PurchaseDeleteMode(mode)
        warning = await PurchaseService.preview_purchase_delete(store, lot_id)

        if mode is PurchaseDeleteMode.DEDUCT:
            if warning.would_go_negative and not acknowledge_negative:
                raise IntegrityWarningError(warning)
            if warning.deduction:
                result = await StockLedgerWriter.adjust_available(
                    store,
                    warning.sku_id,
                    -warning.deduction,
                    MovementType.BATCH_DELETE,
                    reference_type=ReferenceType.PURCHASE,
                    reference_id=warning.lot_id,
                    notes=f"Deleted purchase lot, {warning.deduction} remaining units removed",
                )
                result.raise_for_error()

        await store.delete(Collection.PURCHASES, lot_id)
        logger.info(
            "Deleted purchase lot %s (mode=%s, stock %s -> %s)",
            lot_id, mode.value, warning.quantity_available,
            warning.resulting_available if mode is PurchaseDeleteMode.DEDUCT else warning.quantity_available,
        )
        return warning
