"""Seed helpers shared by the engine and API tests."""
from __future__ import annotations

from datetime import date
from decimal import Decimal

from stockledger.services.fulfillment_service import FulfillmentService
from stockledger.services.purchase_service import PurchaseService
from stockledger.services.sku_service import SKUService
from stockledger.store.base import Collection, RecordStore


async def make_sku(store: RecordStore, code: str = "SKU-A", cost_price: str = "0"):
    return await SKUService.create_sku(store, code, name=code, cost_price=Decimal(cost_price))


async def add_lot(store: RecordStore, sku, quantity: int, cost: str, day: int = 1):
    return await PurchaseService.record_purchase(
        store, sku.id, quantity, Decimal(cost), purchase_date=date(2026, 1, day)
    )


async def make_order(store: RecordStore, number: str, lines: list[tuple], revenue: str = "0"):
    order, order_lines = await FulfillmentService.create_order(
        store,
        number,
        [{"sku_id": sku.id, "quantity": qty} for sku, qty in lines],
        net_revenue=Decimal(revenue),
    )
    return order, order_lines


async def available(store: RecordStore, sku) -> int:
    row = await store.first(Collection.CURRENT_STOCK, {"sku_id": sku.id})
    return row.quantity_available if row else 0


async def movement_total(store: RecordStore, sku) -> int:
    return sum(m.quantity for m in await store.list(Collection.STOCK_MOVEMENTS, {"sku_id": sku.id}))
