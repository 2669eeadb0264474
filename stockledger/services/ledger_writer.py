"""StockLedger — StockLedgerWriter: applies consume / restore plans to lots, aggregates and the movement ledger.

Write order inside one apply: lot remainders, then the per-SKU aggregate,
then the movement rows. Every counter is re-read immediately before it is
written and the write is a compare-and-swap on ``version``. Nothing is
rolled back; a failure part-way is reported in the result and left for the
integrity checker.
"""
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum
from uuid import UUID

from stockledger.config import get_settings
from stockledger.core.errors import LedgerConflictError, StockLedgerError, ValidationError
from stockledger.models.stock import MovementType, ReferenceType, ReturnCondition
from stockledger.schemas.records import CurrentStockRecord, PurchaseLotRecord, StockMovementRecord
from stockledger.store.base import Collection, RecordStore

logger = logging.getLogger(__name__)

AGGREGATE_CAS_ATTEMPTS = 3


class Direction(str, Enum):
    CONSUME = "consume"
    RESTORE = "restore"

    @property
    def sign(self) -> int:
        return -1 if self is Direction.CONSUME else 1


@dataclass(frozen=True)
class MovementDraft:
    """A movement to append. ``quantity`` is a magnitude; the direction signs it."""

    sku_id: UUID
    movement_type: MovementType
    quantity: int
    reference_type: ReferenceType | None = None
    reference_id: UUID | None = None
    notes: str | None = None
    return_condition: ReturnCondition | None = None


@dataclass
class LedgerPlan:
    """
    Everything one apply writes.

    ``lot_takes`` maps lot id to units taken and is only valid when consuming.
    Aggregate deltas are derived from the movements, so the aggregate always
    moves by exactly the sum of the movements appended with it.
    """

    movements: list[MovementDraft] = field(default_factory=list)
    lot_takes: dict[UUID, int] = field(default_factory=dict)

    def add_lot_take(self, lot_id: UUID, quantity: int) -> None:
        self.lot_takes[lot_id] = self.lot_takes.get(lot_id, 0) + quantity

    def stock_deltas(self, direction: Direction) -> dict[UUID, int]:
        deltas: dict[UUID, int] = defaultdict(int)
        for m in self.movements:
            deltas[m.sku_id] += direction.sign * m.quantity
        return {sku_id: delta for sku_id, delta in deltas.items() if delta}


@dataclass
class LedgerApplyResult:
    applied: bool
    error: StockLedgerError | None = None
    movements: list[StockMovementRecord] = field(default_factory=list)

    def raise_for_error(self) -> "LedgerApplyResult":
        if self.error is not None:
            raise self.error
        return self


def chunked(rows: list, size: int):
    for i in range(0, len(rows), size):
        yield rows[i:i + size]


class StockLedgerWriter:
    """Mutates lots, CurrentStock and StockMovement through a RecordStore."""

    @staticmethod
    async def apply(
        store: RecordStore,
        plan: LedgerPlan,
        direction: Direction,
        *,
        movement_date: date | None = None,
    ) -> LedgerApplyResult:
        """Apply ``plan``. Domain failures come back in the result; anything else propagates."""
        direction = Direction(direction)
        try:
            if plan.lot_takes and direction is Direction.RESTORE:
                raise ValidationError("Restore never rewrites lot remainders")
            if plan.lot_takes:
                await StockLedgerWriter._consume_lots(store, plan.lot_takes)
            for sku_id, delta in plan.stock_deltas(direction).items():
                await StockLedgerWriter.update_aggregate(store, sku_id, delta)
            movements = await StockLedgerWriter.insert_movements(
                store, plan.movements, direction, movement_date=movement_date
            )
        except StockLedgerError as exc:
            logger.warning("Ledger %s not fully applied: %s", direction.value, exc)
            return LedgerApplyResult(applied=False, error=exc)
        return LedgerApplyResult(applied=True, movements=movements)

    @staticmethod
    async def _consume_lots(store: RecordStore, lot_takes: dict[UUID, int]) -> None:
        # Verify every lot before the first write so a stale plan writes nothing.
        fresh: list[tuple[PurchaseLotRecord, int]] = []
        for lot_id, take in lot_takes.items():
            lot = await store.get(Collection.PURCHASES, lot_id)
            if lot is None:
                raise LedgerConflictError("purchases", lot_id, expected=f"{take} remaining", actual="lot deleted")
            if lot.quantity_remaining < take:
                logger.warning(
                    "Lot %s has %s remaining, plan needs %s", lot_id, lot.quantity_remaining, take
                )
                raise LedgerConflictError(
                    "purchases", lot_id,
                    expected=f"at least {take} remaining",
                    actual=f"{lot.quantity_remaining} remaining",
                )
            fresh.append((lot, take))

        for lot, take in fresh:
            await store.update(
                Collection.PURCHASES,
                lot.id,
                {"quantity_remaining": lot.quantity_remaining - take},
                expected_version=lot.version,
            )

    @staticmethod
    async def get_or_create_stock(store: RecordStore, sku_id: UUID) -> CurrentStockRecord:
        row = await store.first(Collection.CURRENT_STOCK, {"sku_id": sku_id})
        if row is None:
            row = await store.create(Collection.CURRENT_STOCK, {"sku_id": sku_id, "quantity_available": 0})
        return row

    @staticmethod
    async def update_aggregate(store: RecordStore, sku_id: UUID, delta: int) -> CurrentStockRecord:
        """Fresh read then CAS write of ``quantity_available + delta``; re-read on a lost swap."""
        for attempt in range(AGGREGATE_CAS_ATTEMPTS):
            row = await StockLedgerWriter.get_or_create_stock(store, sku_id)
            try:
                return await store.update(
                    Collection.CURRENT_STOCK,
                    row.id,
                    {"quantity_available": row.quantity_available + delta},
                    expected_version=row.version,
                )
            except LedgerConflictError:
                if attempt == AGGREGATE_CAS_ATTEMPTS - 1:
                    raise
                logger.info("CurrentStock for SKU %s changed underneath, re-reading", sku_id)
        raise RuntimeError("unreachable")  # pragma: no cover

    @staticmethod
    async def insert_movements(
        store: RecordStore,
        drafts: list[MovementDraft],
        direction: Direction,
        *,
        movement_date: date | None = None,
    ) -> list[StockMovementRecord]:
        movement_date = movement_date or date.today()
        rows = [
            {
                "sku_id": d.sku_id,
                "movement_type": d.movement_type,
                "quantity": direction.sign * d.quantity,
                "reference_type": d.reference_type,
                "reference_id": d.reference_id,
                "return_condition": d.return_condition,
                "movement_date": movement_date,
                "notes": d.notes,
            }
            for d in drafts
        ]
        created: list[StockMovementRecord] = []
        for chunk in chunked(rows, get_settings().MOVEMENT_INSERT_BATCH_SIZE):
            created.extend(await store.bulk_create(Collection.STOCK_MOVEMENTS, chunk))
        return created

    @staticmethod
    async def adjust_available(
        store: RecordStore,
        sku_id: UUID,
        delta: int,
        movement_type: MovementType,
        *,
        reference_type: ReferenceType | None = None,
        reference_id: UUID | None = None,
        notes: str | None = None,
        return_condition: ReturnCondition | None = None,
    ) -> LedgerApplyResult:
        """Single-SKU signed change with its one movement."""
        direction = Direction.CONSUME if delta < 0 else Direction.RESTORE
        plan = LedgerPlan(movements=[MovementDraft(
            sku_id=sku_id,
            movement_type=movement_type,
            quantity=abs(delta),
            reference_type=reference_type,
            reference_id=reference_id,
            notes=notes,
            return_condition=return_condition,
        )])
        return await StockLedgerWriter.apply(store, plan, direction)

    @staticmethod
    def validate_lot_row(data: dict) -> None:
        quantity = data["quantity_purchased"]
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
            raise ValidationError(f"Purchase quantity must be a positive integer, got {quantity!r}")
        if Decimal(str(data["cost_per_unit"])) < 0:
            raise ValidationError("Purchase cost_per_unit cannot be negative")

    @staticmethod
    async def receive_purchases(store: RecordStore, lots: list[dict]) -> tuple[list[PurchaseLotRecord], LedgerApplyResult]:
        """
        Create lots and book them in: one aggregate write per SKU and one
        ``purchase`` movement per lot, movements inserted in chunks.
        """
        rows = []
        for data in lots:
            StockLedgerWriter.validate_lot_row(data)
            rows.append({**data, "quantity_remaining": data["quantity_purchased"]})

        created = await store.bulk_create(Collection.PURCHASES, rows)
        plan = LedgerPlan(movements=[
            MovementDraft(
                sku_id=lot.sku_id,
                movement_type=MovementType.PURCHASE,
                quantity=lot.quantity_purchased,
                reference_type=ReferenceType.PURCHASE,
                reference_id=lot.id,
                notes=f"Purchase of {lot.quantity_purchased} @ {lot.cost_per_unit}",
            )
            for lot in created
        ])
        return created, await StockLedgerWriter.apply(store, plan, Direction.RESTORE)
