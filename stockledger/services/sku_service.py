"""StockLedger — SKUService: catalog entries and their stock rows."""
from decimal import Decimal
from uuid import UUID

from stockledger.core.errors import NotFoundError, ValidationError
from stockledger.schemas.records import SKURecord
from stockledger.services.ledger_writer import StockLedgerWriter
from stockledger.store.base import Collection, RecordStore


class SKUService:
    """Create and look up SKUs."""

    @staticmethod
    async def get_skus(store: RecordStore, *, search: str | None = None) -> list[SKURecord]:
        skus = await store.list(Collection.SKUS)
        if search:
            term = search.lower()
            skus = [s for s in skus if term in s.sku_code.lower() or term in s.name.lower()]
        return sorted(skus, key=lambda s: s.sku_code)

    @staticmethod
    async def get_by_id(store: RecordStore, sku_id: UUID) -> SKURecord:
        sku = await store.get(Collection.SKUS, sku_id)
        if sku is None:
            raise NotFoundError("skus", sku_id)
        return sku

    @staticmethod
    async def get_by_code(store: RecordStore, sku_code: str) -> SKURecord | None:
        return await store.first(Collection.SKUS, {"sku_code": sku_code})

    @staticmethod
    async def create_sku(
        store: RecordStore,
        sku_code: str,
        *,
        name: str = "",
        cost_price: Decimal = Decimal("0"),
    ) -> SKURecord:
        """Create a SKU together with its CurrentStock row at zero."""
        sku_code = (sku_code or "").strip()
        if not sku_code:
            raise ValidationError("sku_code is required")
        if Decimal(str(cost_price)) < 0:
            raise ValidationError("cost_price cannot be negative")
        if await SKUService.get_by_code(store, sku_code) is not None:
            raise ValidationError(f"SKU code '{sku_code}' already exists")

        sku = await store.create(Collection.SKUS, {
            "sku_code": sku_code,
            "name": name,
            "cost_price": Decimal(str(cost_price)),
            "damaged_stock": 0,
        })
        await StockLedgerWriter.get_or_create_stock(store, sku.id)
        return sku
