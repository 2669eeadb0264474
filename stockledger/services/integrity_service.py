"""StockLedger — IntegrityService: detects drift between CurrentStock and the movement ledger, and repairs it.

Best-effort sequential writes can leave an aggregate out of step with its
movements when an operation fails half-way. ``check`` finds those SKUs,
``reconcile`` sets the aggregate back to the movement-derived value and
notes the correction with a zero-quantity ``manual`` movement.
"""
import logging
from collections import defaultdict
from dataclasses import asdict, dataclass, field
from uuid import UUID

from stockledger.core.errors import NotFoundError
from stockledger.models.order import OrderStatus
from stockledger.models.stock import MovementType, ReferenceType
from stockledger.services.ledger_writer import Direction, MovementDraft, StockLedgerWriter
from stockledger.store.base import Collection, RecordStore

logger = logging.getLogger(__name__)


@dataclass
class SkuDrift:
    sku_id: UUID
    sku_code: str
    quantity_available: int
    movement_total: int

    @property
    def difference(self) -> int:
        return self.quantity_available - self.movement_total


@dataclass
class IntegrityReport:
    drifts: list[SkuDrift] = field(default_factory=list)
    negative_stock: list[dict] = field(default_factory=list)
    unbooked_orders: list[dict] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not (self.drifts or self.negative_stock or self.unbooked_orders)

    def to_dict(self) -> dict:
        data = asdict(self)
        for drift, raw in zip(self.drifts, data["drifts"]):
            raw["sku_id"] = str(drift.sku_id)
            raw["difference"] = drift.difference
        data["ok"] = self.ok
        return data


class IntegrityService:
    """Stock integrity checker."""

    @staticmethod
    async def movement_totals(store: RecordStore) -> dict[UUID, int]:
        totals: dict[UUID, int] = defaultdict(int)
        for movement in await store.list(Collection.STOCK_MOVEMENTS):
            totals[movement.sku_id] += movement.quantity
        return totals

    @staticmethod
    async def check(store: RecordStore) -> IntegrityReport:
        report = IntegrityReport()
        totals = await IntegrityService.movement_totals(store)
        stock_rows = {row.sku_id: row for row in await store.list(Collection.CURRENT_STOCK)}

        for sku in await store.list(Collection.SKUS):
            row = stock_rows.get(sku.id)
            available = row.quantity_available if row else 0
            total = totals.get(sku.id, 0)
            if available != total:
                report.drifts.append(SkuDrift(sku.id, sku.sku_code, available, total))
            if available < 0:
                report.negative_stock.append(
                    {"sku_id": str(sku.id), "sku_code": sku.sku_code, "quantity_available": available}
                )

        booked = {
            m.reference_id
            for m in await store.list(Collection.STOCK_MOVEMENTS, {"movement_type": MovementType.ORDER_FULFILLMENT})
        }
        shipped = [OrderStatus.FULFILLED, OrderStatus.PARTIALLY_RETURNED, OrderStatus.FULLY_RETURNED]
        for order in await store.list(Collection.ORDERS, {"status": shipped}):
            lines = await store.list(Collection.ORDER_LINES, {"order_id": order.id})
            missing = [str(line.id) for line in lines if line.id not in booked]
            if missing:
                report.unbooked_orders.append(
                    {"order_id": str(order.id), "order_number": order.order_number, "line_ids": missing}
                )

        if not report.ok:
            logger.warning(
                "Integrity check: %s drifted SKU(s), %s negative, %s unbooked order(s)",
                len(report.drifts), len(report.negative_stock), len(report.unbooked_orders),
            )
        return report

    @staticmethod
    async def reconcile(store: RecordStore, sku_id: UUID, *, notes: str | None = None) -> SkuDrift:
        """
        Set CurrentStock to the movement total and record the correction as a
        zero-quantity ``manual`` movement. Returns the drift that was found.
        """
        sku = await store.get(Collection.SKUS, sku_id)
        if sku is None:
            raise NotFoundError("skus", sku_id)
        row = await StockLedgerWriter.get_or_create_stock(store, sku_id)
        movements = await store.list(Collection.STOCK_MOVEMENTS, {"sku_id": sku_id})
        drift = SkuDrift(sku.id, sku.sku_code, row.quantity_available, sum(m.quantity for m in movements))
        if drift.difference == 0:
            return drift

        await store.update(
            Collection.CURRENT_STOCK,
            row.id,
            {"quantity_available": drift.movement_total},
            expected_version=row.version,
        )
        note = f"Reconciled quantity_available {drift.quantity_available} -> {drift.movement_total}"
        await StockLedgerWriter.insert_movements(
            store,
            [MovementDraft(
                sku_id=sku.id,
                movement_type=MovementType.MANUAL,
                quantity=0,
                reference_type=ReferenceType.MANUAL,
                notes=f"{note}. {notes}" if notes else note,
            )],
            Direction.RESTORE,
        )
        logger.info("Reconciled SKU %s: %s -> %s", sku.sku_code, drift.quantity_available, drift.movement_total)
        return drift

    @staticmethod
    async def reconcile_all(store: RecordStore) -> list[SkuDrift]:
        report = await IntegrityService.check(store)
        return [await IntegrityService.reconcile(store, drift.sku_id) for drift in report.drifts]
