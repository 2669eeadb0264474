"""StockLedger — RecordStore: the persistence collaborator the engine talks to.

The contract is deliberately small: list / get / create / bulk_create /
update / delete on named collections, always scoped to one tenant. No call
spans more than one record write, so callers cannot rely on transactions.
"""
from __future__ import annotations

import abc
from collections.abc import Iterable, Mapping
from enum import Enum
from typing import Any
from uuid import UUID

from pydantic import BaseModel

from stockledger.schemas.records import (
    CurrentStockRecord,
    ImportBatchRecord,
    OrderLineRecord,
    OrderRecord,
    PurchaseLotRecord,
    SKURecord,
    StockMovementRecord,
)


class Collection(str, Enum):
    SKUS = "skus"
    PURCHASES = "purchases"
    CURRENT_STOCK = "current_stock"
    ORDERS = "orders"
    ORDER_LINES = "order_lines"
    STOCK_MOVEMENTS = "stock_movements"
    IMPORT_BATCHES = "import_batches"


RECORD_TYPES: dict[Collection, type[BaseModel]] = {
    Collection.SKUS: SKURecord,
    Collection.PURCHASES: PurchaseLotRecord,
    Collection.CURRENT_STOCK: CurrentStockRecord,
    Collection.ORDERS: OrderRecord,
    Collection.ORDER_LINES: OrderLineRecord,
    Collection.STOCK_MOVEMENTS: StockMovementRecord,
    Collection.IMPORT_BATCHES: ImportBatchRecord,
}

Filters = Mapping[str, Any]


class RecordStore(abc.ABC):
    """Tenant-scoped CRUD over named collections."""

    tenant_id: UUID

    @abc.abstractmethod
    async def list(self, collection: Collection, filters: Filters | None = None) -> list[Any]:
        """Equality filters; an iterable value means IN. Ordered by creation."""

    @abc.abstractmethod
    async def get(self, collection: Collection, record_id: UUID) -> Any | None:
        ...

    @abc.abstractmethod
    async def create(self, collection: Collection, data: Mapping[str, Any]) -> Any:
        ...

    @abc.abstractmethod
    async def bulk_create(self, collection: Collection, rows: Iterable[Mapping[str, Any]]) -> list[Any]:
        ...

    @abc.abstractmethod
    async def update(
        self,
        collection: Collection,
        record_id: UUID,
        partial: Mapping[str, Any],
        *,
        expected_version: int | None = None,
    ) -> Any:
        """
        Apply ``partial``. With ``expected_version`` the write is a
        compare-and-swap on the record's version and bumps it; a lost swap
        raises LedgerConflictError, a missing record NotFoundError.
        """

    @abc.abstractmethod
    async def delete(self, collection: Collection, record_id: UUID) -> None:
        ...

    async def first(self, collection: Collection, filters: Filters | None = None) -> Any | None:
        rows = await self.list(collection, filters)
        return rows[0] if rows else None
