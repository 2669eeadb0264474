import pytest

from stockledger.config import get_settings
from stockledger.core.errors import LedgerConflictError, ValidationError
from stockledger.models.stock import MovementType, ReferenceType
from stockledger.services.ledger_writer import Direction, LedgerPlan, MovementDraft, StockLedgerWriter
from stockledger.store.base import Collection
from tests.factories import add_lot, available, make_sku, movement_total


def _fulfillment_plan(sku, lot, quantity):
    plan = LedgerPlan(movements=[MovementDraft(
        sku_id=sku.id,
        movement_type=MovementType.ORDER_FULFILLMENT,
        quantity=quantity,
        reference_type=ReferenceType.ORDER_LINE,
    )])
    plan.add_lot_take(lot.id, quantity)
    return plan


async def test_consume_updates_lot_aggregate_and_ledger(memory_store):
    sku = await make_sku(memory_store)
    lot = await add_lot(memory_store, sku, 10, "2")

    result = await StockLedgerWriter.apply(memory_store, _fulfillment_plan(sku, lot, 4), Direction.CONSUME)

    assert result.applied
    assert [m.quantity for m in result.movements] == [-4]
    assert (await memory_store.get(Collection.PURCHASES, lot.id)).quantity_remaining == 6
    assert await available(memory_store, sku) == 6
    assert await movement_total(memory_store, sku) == 6


async def test_stale_lot_aborts_before_any_write(memory_store):
    sku = await make_sku(memory_store)
    lot = await add_lot(memory_store, sku, 5, "2")
    plan = _fulfillment_plan(sku, lot, 5)
    await memory_store.update(Collection.PURCHASES, lot.id, {"quantity_remaining": 2})
    movements_before = len(await memory_store.list(Collection.STOCK_MOVEMENTS))

    result = await StockLedgerWriter.apply(memory_store, plan, Direction.CONSUME)

    assert not result.applied
    assert isinstance(result.error, LedgerConflictError)
    assert await available(memory_store, sku) == 5
    assert len(await memory_store.list(Collection.STOCK_MOVEMENTS)) == movements_before
    with pytest.raises(LedgerConflictError):
        result.raise_for_error()


async def test_restore_plan_cannot_touch_lots(memory_store):
    sku = await make_sku(memory_store)
    lot = await add_lot(memory_store, sku, 5, "2")

    result = await StockLedgerWriter.apply(memory_store, _fulfillment_plan(sku, lot, 1), Direction.RESTORE)

    assert isinstance(result.error, ValidationError)
    assert await available(memory_store, sku) == 5


async def test_aggregate_row_created_on_first_write(memory_store):
    sku = await make_sku(memory_store)
    row = await memory_store.first(Collection.CURRENT_STOCK, {"sku_id": sku.id})
    await memory_store.delete(Collection.CURRENT_STOCK, row.id)

    updated = await StockLedgerWriter.update_aggregate(memory_store, sku.id, 3)

    assert updated.quantity_available == 3
    assert len(await memory_store.list(Collection.CURRENT_STOCK, {"sku_id": sku.id})) == 1


async def test_aggregate_rereads_after_lost_swap(memory_store, faulty_store):
    sku = await make_sku(memory_store)
    row = await memory_store.first(Collection.CURRENT_STOCK, {"sku_id": sku.id})

    async def concurrent_restore():
        await memory_store.update(
            Collection.CURRENT_STOCK, row.id, {"quantity_available": 5}, expected_version=row.version
        )

    faulty_store.before("update", Collection.CURRENT_STOCK, concurrent_restore)
    updated = await StockLedgerWriter.update_aggregate(faulty_store, sku.id, 2)

    assert updated.quantity_available == 7
    assert faulty_store.count("update", Collection.CURRENT_STOCK) == 2


async def test_movements_inserted_in_chunks(memory_store, faulty_store, monkeypatch):
    monkeypatch.setattr(get_settings(), "MOVEMENT_INSERT_BATCH_SIZE", 2)
    sku = await make_sku(memory_store)
    drafts = [
        MovementDraft(sku_id=sku.id, movement_type=MovementType.MANUAL, quantity=1) for _ in range(5)
    ]

    created = await StockLedgerWriter.insert_movements(faulty_store, drafts, Direction.RESTORE)

    assert len(created) == 5
    assert faulty_store.count("bulk_create", Collection.STOCK_MOVEMENTS) == 3


async def test_adjust_available_signs_the_movement(memory_store):
    sku = await make_sku(memory_store)
    await add_lot(memory_store, sku, 4, "1")

    result = await StockLedgerWriter.adjust_available(
        memory_store, sku.id, -3, MovementType.MANUAL, reference_type=ReferenceType.MANUAL
    )

    assert result.movements[0].quantity == -3
    assert await available(memory_store, sku) == 1
    assert await movement_total(memory_store, sku) == 1


async def test_receive_purchases_rejects_bad_quantity(memory_store):
    sku = await make_sku(memory_store)
    with pytest.raises(ValidationError):
        await StockLedgerWriter.receive_purchases(memory_store, [{
            "sku_id": sku.id, "quantity_purchased": 0, "cost_per_unit": "1",
            "purchase_date": None,
        }])
    assert await memory_store.list(Collection.PURCHASES) == []
