import json
from decimal import Decimal
from uuid import UUID, uuid4

import httpx
import pytest_asyncio
from fastapi import Depends

from stockledger.api.deps import get_store, require_tenant
from stockledger.core.security import issue_tenant_token, read_tenant_token
from stockledger.main import app
from stockledger.models.stock import MovementType
from stockledger.services.ledger_writer import StockLedgerWriter
from stockledger.store import SqlRecordStore


@pytest_asyncio.fixture
async def client(session_maker, tenant_id):
    async def store_for_tenant(tid=Depends(require_tenant)):
        return SqlRecordStore(session_maker, tid)

    app.dependency_overrides[get_store] = store_for_tenant
    token = issue_tenant_token("tester", tenant_id)
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(
        transport=transport,
        base_url="http://test/api/v1",
        headers={"Authorization": f"Bearer {token}"},
    ) as ac:
        yield ac
    app.dependency_overrides.clear()


async def _sku(client, code="SKU-A", cost_price="0"):
    r = await client.post("/skus", json={"sku_code": code, "name": code, "cost_price": cost_price})
    assert r.status_code == 201, r.text
    return r.json()["data"]


async def _purchase(client, sku, quantity, cost, purchase_date="2026-01-01"):
    r = await client.post("/purchases", json={
        "sku_id": sku["id"], "quantity": quantity, "cost_per_unit": cost, "purchase_date": purchase_date,
    })
    assert r.status_code == 201, r.text
    return r.json()["data"]


async def _order(client, number, sku, quantity, revenue="0"):
    r = await client.post("/orders", json={
        "order_number": number,
        "net_revenue": revenue,
        "lines": [{"sku_id": sku["id"], "quantity": quantity}],
    })
    assert r.status_code == 201, r.text
    return r.json()["data"]


async def test_requests_without_token_are_rejected(session_maker, tenant_id):
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
        r = await ac.get("/api/v1/skus")
        health = await ac.get("/health")

    assert r.status_code == 401
    assert r.json()["error"]["code"] == "HTTP_ERROR"
    assert health.json()["status"] == "ok"


async def test_fulfill_flow_over_http(client):
    sku = await _sku(client)
    await _purchase(client, sku, 5, "2", "2026-01-01")
    await _purchase(client, sku, 5, "3", "2026-01-02")
    order = await _order(client, "ORD-1", sku, 7, revenue="40")

    preview = (await client.get(f"/orders/{order['id']}/cost-preview")).json()["data"]
    assert Decimal(preview["total_cost"]) == Decimal("16")
    assert [take["quantity"] for take in preview["lines"][0]["consumption"]] == [5, 2]

    r = await client.post(f"/orders/{order['id']}/fulfill")
    assert r.status_code == 200, r.text
    data = r.json()["data"]
    assert data["status"] == "fulfilled"
    assert Decimal(data["total_cost"]) == Decimal("16")

    stock = (await client.get("/stock")).json()
    assert stock["data"][0]["quantity_available"] == 3
    assert stock["meta"]["total_count"] == 1

    integrity = (await client.get("/stock/integrity")).json()["data"]
    assert integrity["ok"] is True


async def test_insufficient_stock_is_a_400(client):
    sku = await _sku(client)
    await _purchase(client, sku, 1, "1")
    order = await _order(client, "ORD-1", sku, 2)

    r = await client.post(f"/orders/{order['id']}/fulfill")

    assert r.status_code == 400
    error = r.json()["error"]
    assert error["code"] == "INSUFFICIENT_STOCK"
    assert error["shortages"][0]["required"] == 2


async def test_unknown_order_is_a_404(client):
    r = await client.post("/orders/00000000-0000-0000-0000-000000000000/fulfill")
    assert r.status_code == 404
    assert r.json()["error"]["code"] == "NOT_FOUND"


async def test_negative_purchase_delete_is_a_409(client, sql_store):
    sku = await _sku(client)
    lot = await _purchase(client, sku, 3, "1")
    result = await StockLedgerWriter.adjust_available(sql_store, UUID(sku["id"]), -2, MovementType.MANUAL)
    result.raise_for_error()

    r = await client.delete(f"/purchases/{lot['id']}", params={"mode": "deduct"})

    assert r.status_code == 409
    assert r.json()["error"]["warning"]["resulting_available"] == -1

    r = await client.delete(f"/purchases/{lot['id']}", params={"mode": "keep"})
    assert r.status_code == 200


async def test_batch_stream_emits_ndjson(client):
    sku = await _sku(client)
    await _purchase(client, sku, 3, "1")
    ids = [(await _order(client, f"ORD-{n}", sku, 1))["id"] for n in range(2)]

    r = await client.post("/batches/stream", json={"operation": "fulfill", "item_ids": ids})

    assert r.status_code == 200
    events = [json.loads(line) for line in r.text.splitlines() if line]
    assert events[0]["current"] == 0
    assert events[-1]["completed"] is True
    assert events[-1]["success_count"] == 2


async def test_batch_delete_purchases_without_mode_is_a_400(client):
    sku = await _sku(client)
    lot = await _purchase(client, sku, 1, "1")

    r = await client.post("/batches/stream", json={"operation": "delete_purchases", "item_ids": [lot["id"]]})

    assert r.status_code == 400
    assert r.json()["error"]["code"] == "VALIDATION_ERROR"


async def test_invalid_body_is_a_422(client):
    r = await client.post("/skus", json={"sku_code": ""})
    assert r.status_code == 422
    assert r.json()["error"]["field_errors"]


def test_token_claims_round_trip_and_rejections():
    tenant_id = uuid4()
    claims = read_tenant_token(issue_tenant_token("tester", tenant_id))
    assert claims.tenant_id == tenant_id
    assert claims.actor == "tester"

    assert read_tenant_token("not-a-jwt") is None
    assert read_tenant_token(issue_tenant_token("tester", "not-a-uuid")) is None
