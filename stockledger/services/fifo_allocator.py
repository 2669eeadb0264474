"""StockLedger — LotAllocator: FIFO consumption planning over purchase lots.

Pure calculation, zero I/O. Cost previews and the real fulfillment commit
both plan through ``LotAllocator.allocate`` so the two can never disagree.
"""
from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from uuid import UUID

from stockledger.core.errors import ValidationError
from stockledger.schemas.records import PurchaseLotRecord, SKURecord

UNIT_COST_QUANT = Decimal("0.0001")


@dataclass(frozen=True)
class LotConsumption:
    """Units taken from one lot at that lot's unit cost."""

    lot_id: UUID
    quantity: int
    cost_per_unit: Decimal

    @property
    def cost(self) -> Decimal:
        return self.cost_per_unit * self.quantity


@dataclass(frozen=True)
class AllocationPlan:
    """Result of allocating ``quantity`` units of one SKU."""

    sku_id: UUID
    quantity: int
    consumption: tuple[LotConsumption, ...]
    shortfall_qty: int
    fallback_unit_cost: Decimal
    line_cost: Decimal

    @property
    def unit_cost(self) -> Decimal:
        return (self.line_cost / self.quantity).quantize(UNIT_COST_QUANT, rounding=ROUND_HALF_UP)

    @property
    def lot_quantity(self) -> int:
        return sum(c.quantity for c in self.consumption)

    def as_pairs(self) -> list[tuple[UUID, int]]:
        return [(c.lot_id, c.quantity) for c in self.consumption]


def fifo_sort_key(lot: PurchaseLotRecord):
    # Same-day lots: creation time, then id, so the order never depends on fetch order.
    return (lot.purchase_date, lot.created_at is None, lot.created_at or 0, str(lot.id))


class LotAllocator:
    """Oldest-lot-first allocation with static-cost fallback for any shortfall."""

    @staticmethod
    def sort_lots(lots: Iterable[PurchaseLotRecord]) -> list[PurchaseLotRecord]:
        return sorted(lots, key=fifo_sort_key)

    @staticmethod
    def allocate(
        sku: SKURecord,
        quantity_needed: int,
        available_lots: Iterable[PurchaseLotRecord],
    ) -> AllocationPlan:
        """
        Walk lots ascending by purchase date taking min(remaining, lot remaining).

        Lots must already be restricted to the SKU's tenant and SKU. Lots with
        nothing remaining are skipped. Units no lot can cover are reported as
        ``shortfall_qty`` and costed at ``sku.cost_price``.
        """
        if isinstance(quantity_needed, bool) or not isinstance(quantity_needed, int) or quantity_needed <= 0:
            raise ValidationError(f"Quantity to allocate must be a positive integer, got {quantity_needed!r}")

        lots = list(available_lots)
        for lot in lots:
            if lot.sku_id != sku.id or lot.tenant_id != sku.tenant_id:
                raise ValidationError(f"Lot {lot.id} does not belong to SKU {sku.sku_code}")

        remaining = quantity_needed
        consumption: list[LotConsumption] = []
        for lot in LotAllocator.sort_lots(lot for lot in lots if lot.quantity_remaining > 0):
            if remaining <= 0:
                break
            take = min(remaining, lot.quantity_remaining)
            consumption.append(LotConsumption(lot_id=lot.id, quantity=take, cost_per_unit=lot.cost_per_unit))
            remaining -= take

        fallback = sku.cost_price or Decimal("0")
        line_cost = sum((c.cost for c in consumption), Decimal("0")) + fallback * remaining
        return AllocationPlan(
            sku_id=sku.id,
            quantity=quantity_needed,
            consumption=tuple(consumption),
            shortfall_qty=remaining,
            fallback_unit_cost=fallback,
            line_cost=line_cost,
        )

    @staticmethod
    def apply_to_lots(lots: Iterable[PurchaseLotRecord], plan: AllocationPlan) -> list[PurchaseLotRecord]:
        """Return copies of ``lots`` with the plan's consumption deducted (planning snapshots only)."""
        taken = {c.lot_id: c.quantity for c in plan.consumption}
        result = []
        for lot in lots:
            if lot.id in taken:
                lot = lot.model_copy(update={"quantity_remaining": lot.quantity_remaining - taken[lot.id]})
            result.append(lot)
        return result
