import json

from stockledger.services.batch_coordinator import BatchOperation
from stockledger.tasks.batch_tasks import drive_batch, publish_progress
from tests.factories import add_lot, make_order, make_sku


class FakeRedis:
    def __init__(self):
        self.values = {}
        self.ttls = {}

    def setex(self, key, ttl, value):
        self.values[key] = value
        self.ttls[key] = ttl


async def test_drive_batch_publishes_every_event(sql_store, session_maker, tenant_id):
    sku = await make_sku(sql_store)
    await add_lot(sql_store, sku, 2, "1")
    ids = [(await make_order(sql_store, f"ORD-{n}", [(sku, 1)]))[0].id for n in range(2)]
    r = FakeRedis()
    published = []

    def on_progress(event):
        published.append(event.current)
        publish_progress(r, "job-1", str(tenant_id), "RUNNING", event)

    final = await drive_batch(
        session_maker, tenant_id, BatchOperation.FULFILL, ids,
        purchase_mode=None, acknowledge_negative=False, on_progress=on_progress,
    )

    assert final.completed and final.success_count == 2
    assert published == [0, 1, 2, 2]
    stored = json.loads(r.values["batch:job-1"])
    assert stored["tenant_id"] == str(tenant_id)
    assert stored["progress"]["completed"] is True
    assert r.ttls["batch:job-1"] == 86400
