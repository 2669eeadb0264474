"""StockLedger — FulfillmentService: order lifecycle over the FIFO allocator and ledger writer.

Owns every Order status transition:

    pending -> fulfilled -> partially_returned / fully_returned
    partially_returned / fully_returned -> fulfilled   (undo of all returns)

Fulfillment is split into prepare (plan only, no writes) and commit so a
single order and a batch of orders follow exactly the same path.
"""
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from uuid import UUID

from stockledger.core.errors import (
    InsufficientStockError,
    InvalidTransitionError,
    LedgerConflictError,
    NotFoundError,
    ValidationError,
)
from stockledger.models.order import ImportBatchType, OrderStatus
from stockledger.models.stock import MovementType, ReferenceType, ReturnCondition
from stockledger.schemas.records import (
    ImportBatchRecord,
    OrderLineRecord,
    OrderRecord,
    PurchaseLotRecord,
    SKURecord,
    StockMovementRecord,
)
from stockledger.services.fifo_allocator import AllocationPlan, LotAllocator
from stockledger.services.ledger_writer import Direction, LedgerPlan, MovementDraft, StockLedgerWriter
from stockledger.services.purchase_service import PurchaseDeleteMode, PurchaseService
from stockledger.store.base import Collection, RecordStore

logger = logging.getLogger(__name__)

MONEY_QUANT = Decimal("0.0001")
RETURNABLE = {OrderStatus.FULFILLED, OrderStatus.PARTIALLY_RETURNED}


def quantize(value: Decimal) -> Decimal:
    return value.quantize(MONEY_QUANT, rounding=ROUND_HALF_UP)


def profit_figures(net_revenue: Decimal, total_cost: Decimal) -> tuple[Decimal, Decimal | None]:
    """(profit_loss, profit_margin_percent); margin is None when there is no revenue."""
    profit = quantize(net_revenue - total_cost)
    if net_revenue == 0:
        return profit, None
    return profit, quantize(profit / net_revenue * 100)


def status_for_lines(lines: list[OrderLineRecord]) -> OrderStatus:
    returned = sum(1 for line in lines if line.is_returned)
    if lines and returned == len(lines):
        return OrderStatus.FULLY_RETURNED
    if returned:
        return OrderStatus.PARTIALLY_RETURNED
    return OrderStatus.FULFILLED


def legacy_return_condition(notes: str | None) -> ReturnCondition:
    """Condition of a return movement written before the structured column existed."""
    text = (notes or "").lower()
    if "damaged" in text:
        return ReturnCondition.DAMAGED
    if "missing" in text:
        return ReturnCondition.MISSING
    return ReturnCondition.SOUND


class StockSnapshot:
    """
    In-memory view of SKUs, lots and available stock used while planning.

    Reserving a plan deducts it from the snapshot only, so plans prepared
    later in a batch see the consumption of plans prepared earlier.
    """

    def __init__(self, store: RecordStore):
        self.store = store
        self.skus: dict[UUID, SKURecord] = {}
        self.lots: dict[UUID, list[PurchaseLotRecord]] = {}
        self.available: dict[UUID, int] = {}

    async def load(self, sku_ids) -> None:
        for sku_id in sku_ids:
            if sku_id in self.skus:
                continue
            sku = await self.store.get(Collection.SKUS, sku_id)
            if sku is None:
                raise NotFoundError("skus", sku_id)
            stock = await self.store.first(Collection.CURRENT_STOCK, {"sku_id": sku_id})
            self.skus[sku_id] = sku
            self.lots[sku_id] = await self.store.list(Collection.PURCHASES, {"sku_id": sku_id})
            self.available[sku_id] = stock.quantity_available if stock else 0

    def allocate(self, sku_id: UUID, quantity: int) -> AllocationPlan:
        return LotAllocator.allocate(self.skus[sku_id], quantity, self.lots[sku_id])

    def reserve(self, plan: AllocationPlan) -> None:
        self.lots[plan.sku_id] = LotAllocator.apply_to_lots(self.lots[plan.sku_id], plan)
        self.available[plan.sku_id] -= plan.quantity


@dataclass
class LineAllocation:
    line: OrderLineRecord
    allocation: AllocationPlan


@dataclass
class FulfillmentPlan:
    """Everything needed to commit one order's fulfillment."""

    order: OrderRecord
    lines: list[LineAllocation] = field(default_factory=list)

    @property
    def total_cost(self) -> Decimal:
        return quantize(sum((la.allocation.line_cost for la in self.lines), Decimal("0")))

    def ledger_plan(self) -> LedgerPlan:
        plan = LedgerPlan()
        for la in self.lines:
            for consumption in la.allocation.consumption:
                plan.add_lot_take(consumption.lot_id, consumption.quantity)
            plan.movements.append(MovementDraft(
                sku_id=la.line.sku_id,
                movement_type=MovementType.ORDER_FULFILLMENT,
                quantity=la.line.quantity,
                reference_type=ReferenceType.ORDER_LINE,
                reference_id=la.line.id,
                notes=f"Fulfilled order {self.order.order_number}",
            ))
        return plan


@dataclass
class OrderDeletion:
    order_id: UUID
    restored_units: int
    movements: list[StockMovementRecord] = field(default_factory=list)


class FulfillmentService:
    """Fulfill, return, undo and delete orders."""

    @staticmethod
    async def get_order(store: RecordStore, order_id: UUID) -> OrderRecord:
        order = await store.get(Collection.ORDERS, order_id)
        if order is None:
            raise NotFoundError("orders", order_id)
        return order

    @staticmethod
    async def get_lines(store: RecordStore, order_id: UUID) -> list[OrderLineRecord]:
        return await store.list(Collection.ORDER_LINES, {"order_id": order_id})

    @staticmethod
    async def validate_order(store: RecordStore, order_number: str, lines: list[dict]) -> None:
        if not order_number:
            raise ValidationError("order_number is required")
        if not lines:
            raise ValidationError(f"Order {order_number} has no lines")
        for line in lines:
            quantity = line.get("quantity")
            if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
                raise ValidationError(f"Line quantity must be a positive integer, got {quantity!r}")
            if await store.get(Collection.SKUS, line["sku_id"]) is None:
                raise NotFoundError("skus", line["sku_id"])

    @staticmethod
    async def create_order(
        store: RecordStore,
        order_number: str,
        lines: list[dict],
        *,
        net_revenue: Decimal = Decimal("0"),
        import_batch_id: UUID | None = None,
    ) -> tuple[OrderRecord, list[OrderLineRecord]]:
        """Create a pending order with its lines. Each line dict needs sku_id and quantity."""
        await FulfillmentService.validate_order(store, order_number, lines)
        order = await store.create(Collection.ORDERS, {
            "order_number": order_number,
            "status": OrderStatus.PENDING,
            "net_revenue": Decimal(str(net_revenue)),
            "import_batch_id": import_batch_id,
        })
        created = await store.bulk_create(Collection.ORDER_LINES, [
            {"order_id": order.id, "sku_id": line["sku_id"], "quantity": line["quantity"]} for line in lines
        ])
        return order, created

    @staticmethod
    async def import_orders(store: RecordStore, batch_name: str, orders: list[dict]) -> ImportBatchRecord:
        """Create orders from one upload under a shared ImportBatch."""
        if not orders:
            raise ValidationError("Import contains no orders")
        revenues = []
        for data in orders:
            await FulfillmentService.validate_order(store, data.get("order_number"), data.get("lines"))
            revenues.append(Decimal(str(data.get("net_revenue", 0))))

        batch = await store.create(Collection.IMPORT_BATCHES, {
            "batch_type": ImportBatchType.ORDERS,
            "batch_name": batch_name,
            "record_count": len(orders),
        })
        for data, net_revenue in zip(orders, revenues):
            await FulfillmentService.create_order(
                store,
                data["order_number"],
                data["lines"],
                net_revenue=net_revenue,
                import_batch_id=batch.id,
            )
        logger.info("Imported %s orders into batch %s", len(orders), batch.id)
        return batch

    # ── Fulfillment ──────────────────────────────────────────────

    @staticmethod
    def _check_availability(
        lines: list[OrderLineRecord], snapshot: StockSnapshot
    ) -> None:
        required: dict[UUID, int] = defaultdict(int)
        for line in lines:
            required[line.sku_id] += line.quantity
        shortages = [
            {
                "sku_id": str(sku_id),
                "sku_code": snapshot.skus[sku_id].sku_code,
                "required": qty,
                "available": snapshot.available[sku_id],
            }
            for sku_id, qty in required.items()
            if snapshot.available[sku_id] < qty
        ]
        if shortages:
            codes = ", ".join(
                f"{s['sku_code']} (need {s['required']}, have {s['available']})" for s in shortages
            )
            raise InsufficientStockError(f"Cannot fulfill — insufficient stock: {codes}", shortages)

    @staticmethod
    async def prepare_fulfillment(
        store: RecordStore,
        order_id: UUID,
        snapshot: StockSnapshot | None = None,
    ) -> FulfillmentPlan:
        """Plan one order's fulfillment against ``snapshot`` without writing anything."""
        snapshot = snapshot or StockSnapshot(store)
        order = await FulfillmentService.get_order(store, order_id)
        if order.status != OrderStatus.PENDING:
            raise InvalidTransitionError(order.id, order.status.value, "fulfill")

        lines = [line for line in await FulfillmentService.get_lines(store, order.id) if not line.is_returned]
        if not lines:
            raise ValidationError(f"Order {order.order_number} has no lines to fulfill")

        await snapshot.load({line.sku_id for line in lines})
        FulfillmentService._check_availability(lines, snapshot)

        plan = FulfillmentPlan(order=order)
        for line in lines:
            allocation = snapshot.allocate(line.sku_id, line.quantity)
            snapshot.reserve(allocation)
            if allocation.shortfall_qty:
                logger.info(
                    "Order %s line %s: %s units costed at SKU fallback %s",
                    order.order_number, line.id, allocation.shortfall_qty, allocation.fallback_unit_cost,
                )
            plan.lines.append(LineAllocation(line=line, allocation=allocation))
        return plan

    @staticmethod
    async def commit_fulfillment(store: RecordStore, plan: FulfillmentPlan) -> OrderRecord:
        """Line costs, then lots / aggregate / movements, then the verified status change."""
        current = await FulfillmentService.get_order(store, plan.order.id)
        if current.status != OrderStatus.PENDING:
            raise InvalidTransitionError(current.id, current.status.value, "fulfill")

        for la in plan.lines:
            await store.update(Collection.ORDER_LINES, la.line.id, {
                "unit_cost": la.allocation.unit_cost,
                "line_total_cost": quantize(la.allocation.line_cost),
            })

        result = await StockLedgerWriter.apply(store, plan.ledger_plan(), Direction.CONSUME)
        result.raise_for_error()

        total_cost = plan.total_cost
        profit, margin = profit_figures(current.net_revenue, total_cost)
        return await FulfillmentService._set_status(store, current.id, OrderStatus.FULFILLED, {
            "total_cost": total_cost,
            "profit_loss": profit,
            "profit_margin_percent": margin,
        })

    @staticmethod
    async def fulfill(store: RecordStore, order_id: UUID) -> OrderRecord:
        plan = await FulfillmentService.prepare_fulfillment(store, order_id)
        order = await FulfillmentService.commit_fulfillment(store, plan)
        logger.info("Fulfilled order %s, total cost %s", order.order_number, order.total_cost)
        return order

    @staticmethod
    async def preview_cost(store: RecordStore, order_id: UUID) -> FulfillmentPlan:
        """The cost fulfillment would book right now; writes nothing and skips the stock check."""
        order = await FulfillmentService.get_order(store, order_id)
        lines = [line for line in await FulfillmentService.get_lines(store, order.id) if not line.is_returned]
        snapshot = StockSnapshot(store)
        await snapshot.load({line.sku_id for line in lines})
        plan = FulfillmentPlan(order=order)
        for line in lines:
            allocation = snapshot.allocate(line.sku_id, line.quantity)
            snapshot.reserve(allocation)
            plan.lines.append(LineAllocation(line=line, allocation=allocation))
        return plan

    @staticmethod
    async def _set_status(store: RecordStore, order_id: UUID, status: OrderStatus, extra: dict | None = None) -> OrderRecord:
        await store.update(Collection.ORDERS, order_id, {"status": status, **(extra or {})})
        persisted = await FulfillmentService.get_order(store, order_id)
        if persisted.status != status:
            raise LedgerConflictError("orders", order_id, expected=f"status {status.value}",
                                      actual=f"status {persisted.status.value}")
        return persisted

    @staticmethod
    async def _recompute_status(store: RecordStore, order_id: UUID) -> OrderRecord:
        lines = await FulfillmentService.get_lines(store, order_id)
        return await FulfillmentService._set_status(store, order_id, status_for_lines(lines))

    # ── Returns ──────────────────────────────────────────────────

    @staticmethod
    async def return_lines(
        store: RecordStore,
        order_id: UUID,
        conditions: dict[UUID, ReturnCondition],
        *,
        return_date: date | None = None,
    ) -> OrderRecord:
        """Return the selected lines, each with its own condition."""
        order = await FulfillmentService.get_order(store, order_id)
        if order.status not in RETURNABLE:
            raise InvalidTransitionError(order.id, order.status.value, "return")
        if not conditions:
            raise ValidationError("Select at least one line to return")

        lines = {line.id: line for line in await FulfillmentService.get_lines(store, order.id)}
        selected: list[tuple[OrderLineRecord, ReturnCondition]] = []
        for line_id, condition in conditions.items():
            line = lines.get(line_id)
            if line is None:
                raise NotFoundError("order_lines", line_id)
            if line.is_returned:
                raise ValidationError(f"Line {line_id} is already returned")
            selected.append((line, ReturnCondition(condition)))

        return_date = return_date or date.today()
        plan = LedgerPlan(movements=[
            MovementDraft(
                sku_id=line.sku_id,
                movement_type=MovementType.RETURN,
                quantity=line.quantity if condition is ReturnCondition.SOUND else 0,
                reference_type=ReferenceType.ORDER_LINE,
                reference_id=line.id,
                notes=f"Return ({condition.value}) of {line.quantity} from order {order.order_number}",
                return_condition=condition,
            )
            for line, condition in selected
        ])
        result = await StockLedgerWriter.apply(store, plan, Direction.RESTORE, movement_date=return_date)
        result.raise_for_error()

        for line, condition in selected:
            if condition is ReturnCondition.DAMAGED:
                sku = await store.get(Collection.SKUS, line.sku_id)
                if sku is None:
                    raise NotFoundError("skus", line.sku_id)
                await store.update(Collection.SKUS, sku.id, {"damaged_stock": sku.damaged_stock + line.quantity})

        # Lines flip last: a failed restore must leave them returnable.
        for line, _ in selected:
            await store.update(Collection.ORDER_LINES, line.id, {"is_returned": True, "return_date": return_date})

        updated = await FulfillmentService._recompute_status(store, order.id)
        logger.info("Returned %s line(s) of order %s, status %s", len(selected), order.order_number, updated.status.value)
        return updated

    @staticmethod
    async def undo_return(store: RecordStore, movement_id: UUID) -> OrderRecord:
        """Reverse one return movement by its condition, delete it, and recompute status."""
        movement = await store.get(Collection.STOCK_MOVEMENTS, movement_id)
        if movement is None:
            raise NotFoundError("stock_movements", movement_id)
        if movement.movement_type != MovementType.RETURN or movement.reference_type != ReferenceType.ORDER_LINE:
            raise ValidationError(f"Movement {movement_id} is not an order line return")

        line = await store.get(Collection.ORDER_LINES, movement.reference_id)
        if line is None:
            raise NotFoundError("order_lines", movement.reference_id)
        if not line.is_returned:
            raise ValidationError(f"Line {line.id} is not returned")

        condition = movement.return_condition or legacy_return_condition(movement.notes)
        if condition is ReturnCondition.SOUND:
            stock = await StockLedgerWriter.get_or_create_stock(store, line.sku_id)
            if stock.quantity_available < movement.quantity:
                raise InsufficientStockError(
                    f"Cannot undo return: {movement.quantity} restored units are no longer available "
                    f"(have {stock.quantity_available})",
                    [{"sku_id": str(line.sku_id), "required": movement.quantity,
                      "available": stock.quantity_available}],
                )
            # The deleted movement carried the restored quantity; removing both keeps them in step.
            await StockLedgerWriter.update_aggregate(store, line.sku_id, -movement.quantity)
        elif condition is ReturnCondition.DAMAGED:
            sku = await store.get(Collection.SKUS, line.sku_id)
            if sku is None:
                raise NotFoundError("skus", line.sku_id)
            await store.update(Collection.SKUS, sku.id, {"damaged_stock": max(0, sku.damaged_stock - line.quantity)})

        await store.delete(Collection.STOCK_MOVEMENTS, movement.id)
        await store.update(Collection.ORDER_LINES, line.id, {"is_returned": False, "return_date": None})
        order = await FulfillmentService._recompute_status(store, line.order_id)
        logger.info("Undid %s return on line %s, order status %s", condition.value, line.id, order.status.value)
        return order

    # ── Deletion ─────────────────────────────────────────────────

    @staticmethod
    async def delete_order(store: RecordStore, order_id: UUID) -> OrderDeletion:
        """Delete an order; stock consumed by its non-returned lines is restored first."""
        order = await FulfillmentService.get_order(store, order_id)
        lines = await FulfillmentService.get_lines(store, order.id)

        deletion = OrderDeletion(order_id=order.id, restored_units=0)
        if order.status != OrderStatus.PENDING:
            plan = LedgerPlan(movements=[
                MovementDraft(
                    sku_id=line.sku_id,
                    movement_type=MovementType.BATCH_DELETE,
                    quantity=line.quantity,
                    reference_type=ReferenceType.ORDER_LINE,
                    reference_id=line.id,
                    notes=f"Stock restored on deletion of order {order.order_number}",
                )
                for line in lines
                if not line.is_returned
            ])
            if plan.movements:
                result = await StockLedgerWriter.apply(store, plan, Direction.RESTORE)
                result.raise_for_error()
                deletion.movements = result.movements
                deletion.restored_units = sum(m.quantity for m in plan.movements)

        for line in lines:
            await store.delete(Collection.ORDER_LINES, line.id)
        await store.delete(Collection.ORDERS, order.id)
        logger.info("Deleted order %s, restored %s units", order.order_number, deletion.restored_units)
        return deletion

    @staticmethod
    async def delete_import_batch(
        store: RecordStore,
        batch_id: UUID,
        *,
        purchase_mode: PurchaseDeleteMode = PurchaseDeleteMode.DEDUCT,
        acknowledge_negative: bool = False,
    ) -> int:
        """Delete every record of an upload, reversing stock per order / lot. Returns records deleted."""

        batch = await store.get(Collection.IMPORT_BATCHES, batch_id)
        if batch is None:
            raise NotFoundError("import_batches", batch_id)

        deleted = 0
        if batch.batch_type == ImportBatchType.ORDERS:
            for order in await store.list(Collection.ORDERS, {"import_batch_id": batch.id}):
                await FulfillmentService.delete_order(store, order.id)
                deleted += 1
        else:
            mode = PurchaseDeleteMode(purchase_mode)
            for lot in await store.list(Collection.PURCHASES, {"import_batch_id": batch.id}):
                await PurchaseService.delete_purchase(
                    store, lot.id, mode=mode, acknowledge_negative=acknowledge_negative
                )
                deleted += 1

        await store.delete(Collection.IMPORT_BATCHES, batch.id)
        logger.info("Deleted import batch %s (%s records)", batch.batch_name, deleted)
        return deleted
