from stockledger.models.order import OrderStatus
from stockledger.models.stock import MovementType
from stockledger.services.integrity_service import IntegrityService
from stockledger.store.base import Collection
from tests.factories import add_lot, available, make_order, make_sku, movement_total


async def test_clean_ledger_reports_ok(memory_store):
    sku = await make_sku(memory_store)
    await add_lot(memory_store, sku, 4, "1")

    report = await IntegrityService.check(memory_store)

    assert report.ok
    assert report.to_dict()["ok"] is True


async def test_drift_detected_and_reconciled(memory_store):
    sku = await make_sku(memory_store)
    await add_lot(memory_store, sku, 4, "1")
    row = await memory_store.first(Collection.CURRENT_STOCK, {"sku_id": sku.id})
    await memory_store.update(Collection.CURRENT_STOCK, row.id, {"quantity_available": 9})

    report = await IntegrityService.check(memory_store)
    assert [(d.sku_code, d.difference) for d in report.drifts] == [("SKU-A", 5)]

    repaired = await IntegrityService.reconcile_all(memory_store)

    assert [d.movement_total for d in repaired] == [4]
    assert await available(memory_store, sku) == 4
    assert await movement_total(memory_store, sku) == 4
    manual = await memory_store.list(Collection.STOCK_MOVEMENTS, {"movement_type": MovementType.MANUAL})
    assert manual[0].quantity == 0
    assert "9 -> 4" in manual[0].notes
    assert (await IntegrityService.check(memory_store)).ok


async def test_negative_stock_reported(memory_store):
    sku = await make_sku(memory_store)
    row = await memory_store.first(Collection.CURRENT_STOCK, {"sku_id": sku.id})
    await memory_store.update(Collection.CURRENT_STOCK, row.id, {"quantity_available": -2})

    report = await IntegrityService.check(memory_store)

    assert report.negative_stock == [{"sku_id": str(sku.id), "sku_code": "SKU-A", "quantity_available": -2}]


async def test_shipped_order_without_movements_is_flagged(memory_store):
    sku = await make_sku(memory_store)
    order, lines = await make_order(memory_store, "ORD-1", [(sku, 1)])
    await memory_store.update(Collection.ORDERS, order.id, {"status": OrderStatus.FULFILLED})

    report = await IntegrityService.check(memory_store)

    assert report.unbooked_orders == [
        {"order_id": str(order.id), "order_number": "ORD-1", "line_ids": [str(lines[0].id)]}
    ]
