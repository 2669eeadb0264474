import pytest

from stockledger.core.errors import ValidationError
from stockledger.models.order import OrderStatus
from stockledger.models.stock import MovementType
from stockledger.services.batch_coordinator import BatchCoordinator, BatchOperation
from stockledger.services.ledger_writer import StockLedgerWriter
from stockledger.services.purchase_service import PurchaseDeleteMode
from stockledger.store.base import Collection
from tests.factories import add_lot, available, make_order, make_sku, movement_total
from tests.fakes import MemoryRecordStore


class RecordingSleep:
    def __init__(self):
        self.delays = []

    async def __call__(self, delay):
        self.delays.append(delay)


async def test_bulk_fulfill_isolates_the_short_order(sql_store):
    plenty = await make_sku(sql_store, "SKU-A")
    scarce = await make_sku(sql_store, "SKU-B")
    await add_lot(sql_store, plenty, 10, "1")
    await add_lot(sql_store, scarce, 1, "1")
    orders = []
    for n in range(1, 6):
        sku = scarce if n == 3 else plenty
        order, _ = await make_order(sql_store, f"ORD-{n}", [(sku, 2)])
        orders.append(order)

    final = await BatchCoordinator(sql_store).collect(BatchOperation.FULFILL, [o.id for o in orders])

    assert final.completed
    assert (final.success_count, final.fail_count, final.current) == (4, 1, 5)
    failed = [entry for entry in final.log if not entry.success]
    assert failed[0].label == "ORD-3"
    assert failed[0].code == "INSUFFICIENT_STOCK"
    assert (await sql_store.get(Collection.ORDERS, orders[2].id)).status == OrderStatus.PENDING
    assert await available(sql_store, plenty) == 2
    assert await movement_total(sql_store, plenty) == 2
    assert await available(sql_store, scarce) == 1


async def test_shared_snapshot_sees_earlier_orders(memory_store):
    sku = await make_sku(memory_store)
    await add_lot(memory_store, sku, 3, "1")
    first, _ = await make_order(memory_store, "ORD-1", [(sku, 2)])
    second, _ = await make_order(memory_store, "ORD-2", [(sku, 2)])

    final = await BatchCoordinator(memory_store).collect(BatchOperation.FULFILL, [first.id, second.id])

    assert (final.success_count, final.fail_count) == (1, 1)
    assert final.stock_shortages == [{
        "sku_id": str(sku.id), "sku_code": "SKU-A", "required": 4, "available": 3, "shortage": 1,
    }]
    assert (await memory_store.get(Collection.ORDERS, second.id)).status == OrderStatus.PENDING
    assert await available(memory_store, sku) == 1


async def test_progress_stream_shape(memory_store):
    sku = await make_sku(memory_store)
    await add_lot(memory_store, sku, 5, "1")
    ids = [(await make_order(memory_store, f"ORD-{n}", [(sku, 1)]))[0].id for n in range(3)]

    events = [event async for event in BatchCoordinator(memory_store).run(BatchOperation.FULFILL, ids)]

    assert events[0].current == 0 and not events[0].completed
    assert [e.current for e in events[1:-1]] == [1, 2, 3]
    assert events[-1].completed and events[-1].success_count == 3
    assert events[-1].to_dict()["log"][0] == {"label": "ORD-0", "success": True}


@pytest.mark.parametrize("failures, expected_sleeps", [(2, [0.2, 0.1]), (4, [0.2, 0.4])])
async def test_delete_chunks_back_off_while_rate_limited(memory_store, faulty_store, failures, expected_sleeps):
    sku = await make_sku(memory_store)
    ids = [(await make_order(memory_store, f"ORD-{n}", [(sku, 1)]))[0].id for n in range(6)]
    faulty_store.fail_next("get", Collection.ORDERS, failures)
    sleep = RecordingSleep()
    coordinator = BatchCoordinator(faulty_store, chunk_size=2, base_delay=0.1, max_delay=5, sleep=sleep)

    final = await coordinator.collect(BatchOperation.DELETE_ORDERS, ids)

    assert sleep.delays == pytest.approx(expected_sleeps)
    assert (final.success_count, final.fail_count) == (6 - failures, failures)
    assert {entry.code for entry in final.log if not entry.success} == {"RATE_LIMITED"}
    assert len(await memory_store.list(Collection.ORDERS)) == failures


def test_chunk_delay_is_capped(memory_store):
    coordinator = BatchCoordinator(memory_store, chunk_size=2, base_delay=1, max_delay=5)
    assert [coordinator.chunk_delay(n) for n in range(5)] == [1, 2, 4, 5, 5]


async def test_delete_purchases_requires_a_mode(memory_store):
    with pytest.raises(ValidationError):
        BatchCoordinator.validate_request(BatchOperation.DELETE_PURCHASES, None)
    with pytest.raises(ValidationError):
        await BatchCoordinator(memory_store).collect(BatchOperation.DELETE_PURCHASES, [])


async def test_delete_purchases_reports_integrity_warnings(memory_store):
    sku = await make_sku(memory_store)
    safe = await add_lot(memory_store, sku, 2, "1")
    risky = await add_lot(memory_store, sku, 3, "1", day=2)
    order, _ = await make_order(memory_store, "ORD-1", [(sku, 1)])
    coordinator = BatchCoordinator(memory_store, sleep=RecordingSleep())
    await coordinator.collect(BatchOperation.FULFILL, [order.id])
    await StockLedgerWriter.adjust_available(memory_store, sku.id, -3, MovementType.MANUAL)

    final = await coordinator.collect(
        BatchOperation.DELETE_PURCHASES, [risky.id, safe.id], purchase_mode=PurchaseDeleteMode.DEDUCT
    )

    assert (final.success_count, final.fail_count) == (1, 1)
    assert final.log[0].code == "INTEGRITY_WARNING"
    assert await memory_store.get(Collection.PURCHASES, risky.id) is not None
    assert await memory_store.get(Collection.PURCHASES, safe.id) is None
    assert await available(memory_store, sku) == 0


async def test_bulk_delete_on_one_sku_never_conflicts_with_itself(sql_store):
    sku = await make_sku(sql_store)
    await add_lot(sql_store, sku, 10, "1")
    ids = [(await make_order(sql_store, f"ORD-{n}", [(sku, 1)]))[0].id for n in range(10)]
    coordinator = BatchCoordinator(sql_store, sleep=RecordingSleep())
    fulfilled = await coordinator.collect(BatchOperation.FULFILL, ids)
    assert fulfilled.success_count == 10
    assert await available(sql_store, sku) == 0

    final = await coordinator.collect(BatchOperation.DELETE_ORDERS, ids)

    assert (final.success_count, final.fail_count) == (10, 0)
    assert await sql_store.list(Collection.ORDERS) == []
    assert await available(sql_store, sku) == 10
    assert await movement_total(sql_store, sku) == 10


class BrokenOrderStore(MemoryRecordStore):
    """Raises a driver-style error whenever one chosen order is read."""

    broken_id = None

    async def get(self, collection, record_id):
        if Collection(collection) is Collection.ORDERS and record_id == self.broken_id:
            raise RuntimeError("connection reset")
        return await super().get(collection, record_id)


async def test_unexpected_prepare_error_does_not_end_the_run():
    store = BrokenOrderStore()
    sku = await make_sku(store)
    await add_lot(store, sku, 10, "1")
    ids = [(await make_order(store, f"ORD-{n}", [(sku, 2)]))[0].id for n in range(1, 4)]
    store.broken_id = ids[1]

    final = await BatchCoordinator(store).collect(BatchOperation.FULFILL, ids)

    assert final.completed
    assert (final.success_count, final.fail_count, final.current) == (2, 1, 3)
    failed = [entry for entry in final.log if not entry.success]
    assert failed[0].label == str(ids[1])
    assert failed[0].code == "INTERNAL_ERROR"
    assert (await store.get(Collection.ORDERS, ids[0])).status == OrderStatus.FULFILLED
    assert (await store.get(Collection.ORDERS, ids[2])).status == OrderStatus.FULFILLED
    assert await available(store, sku) == 6


async def test_lot_drained_after_prepare_fails_only_its_order(memory_store, faulty_store):
    plenty = await make_sku(memory_store, "SKU-A")
    scarce = await make_sku(memory_store, "SKU-B")
    await add_lot(memory_store, plenty, 10, "1")
    scarce_lot = await add_lot(memory_store, scarce, 2, "1")
    first, _ = await make_order(memory_store, "ORD-1", [(plenty, 2)])
    second, _ = await make_order(memory_store, "ORD-2", [(scarce, 2)])
    third, _ = await make_order(memory_store, "ORD-3", [(plenty, 2)])

    async def drain_scarce_lot():
        lot = await memory_store.get(Collection.PURCHASES, scarce_lot.id)
        await memory_store.update(
            Collection.PURCHASES, lot.id, {"quantity_remaining": 0}, expected_version=lot.version
        )

    # Prepare reads lots with list(); the first get() is ORD-1's commit.
    faulty_store.before("get", Collection.PURCHASES, drain_scarce_lot)

    final = await BatchCoordinator(faulty_store).collect(
        BatchOperation.FULFILL, [first.id, second.id, third.id]
    )

    assert final.completed
    assert (final.success_count, final.fail_count) == (2, 1)
    failed = [entry for entry in final.log if not entry.success]
    assert failed[0].label == "ORD-2"
    assert failed[0].code == "STOCK_LEDGER_CONFLICT"
    assert (await memory_store.get(Collection.ORDERS, second.id)).status == OrderStatus.PENDING
    assert (await memory_store.get(Collection.ORDERS, third.id)).status == OrderStatus.FULFILLED
    assert await available(memory_store, plenty) == 6
    assert await available(memory_store, scarce) == 2
