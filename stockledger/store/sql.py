"""StockLedger — SQLAlchemy-backed RecordStore.

Each call runs in its own short session and commits on its own, so a failure
half-way through an operation leaves earlier writes in place. That matches
the guarantees of the document stores this engine also runs against.
"""
from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from contextlib import asynccontextmanager
from enum import Enum
from typing import Any
from uuid import UUID

from sqlalchemy import select, text, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from stockledger.core.errors import LedgerConflictError, NotFoundError, ValidationError
from stockledger.models import (
    SKU,
    CurrentStock,
    ImportBatch,
    Order,
    OrderLine,
    PurchaseLot,
    StockMovement,
)
from stockledger.store.base import RECORD_TYPES, Collection, Filters, RecordStore

logger = logging.getLogger(__name__)

MODELS = {
    Collection.SKUS: SKU,
    Collection.PURCHASES: PurchaseLot,
    Collection.CURRENT_STOCK: CurrentStock,
    Collection.ORDERS: Order,
    Collection.ORDER_LINES: OrderLine,
    Collection.STOCK_MOVEMENTS: StockMovement,
    Collection.IMPORT_BATCHES: ImportBatch,
}

_PROTECTED = {"id", "tenant_id", "created_at"}


def _plain(value: Any) -> Any:
    return value.value if isinstance(value, Enum) else value


class SqlRecordStore(RecordStore):
    """RecordStore over the relational schema in stockledger.models."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession], tenant_id: UUID):
        self._session_factory = session_factory
        self.tenant_id = tenant_id

    @asynccontextmanager
    async def _session(self):
        """Session with app.tenant_id set for row level security on Postgres."""
        async with self._session_factory() as session:
            if session.bind is not None and session.bind.dialect.name == "postgresql":
                await session.execute(
                    text("SELECT set_config('app.tenant_id', :tid, true)"),
                    {"tid": str(self.tenant_id)},
                )
            yield session

    def _model(self, collection: Collection):
        return MODELS[Collection(collection)]

    def _to_record(self, collection: Collection, obj: Any):
        return RECORD_TYPES[Collection(collection)].model_validate(obj)

    def _columns(self, model, data: Mapping[str, Any], *, allow_id: bool) -> dict[str, Any]:
        values: dict[str, Any] = {}
        for field, value in data.items():
            if field in _PROTECTED and not (allow_id and field == "id"):
                continue
            if field not in model.__table__.columns:
                raise ValidationError(f"Unknown field '{field}' for {model.__tablename__}")
            values[field] = _plain(value)
        return values

    async def list(self, collection: Collection, filters: Filters | None = None) -> list[Any]:
        model = self._model(collection)
        stmt = select(model).where(model.tenant_id == self.tenant_id)
        for field, value in (filters or {}).items():
            if field not in model.__table__.columns:
                raise ValidationError(f"Unknown filter '{field}' for {model.__tablename__}")
            column = getattr(model, field)
            if isinstance(value, (list, tuple, set, frozenset)):
                stmt = stmt.where(column.in_([_plain(v) for v in value]))
            elif value is None:
                stmt = stmt.where(column.is_(None))
            else:
                stmt = stmt.where(column == _plain(value))
        stmt = stmt.order_by(model.created_at, model.id)

        async with self._session() as session:
            result = await session.execute(stmt)
            return [self._to_record(collection, row) for row in result.scalars().all()]

    async def get(self, collection: Collection, record_id: UUID) -> Any | None:
        model = self._model(collection)
        async with self._session() as session:
            result = await session.execute(
                select(model).where(model.id == record_id, model.tenant_id == self.tenant_id)
            )
            obj = result.scalar_one_or_none()
            return self._to_record(collection, obj) if obj is not None else None

    async def create(self, collection: Collection, data: Mapping[str, Any]) -> Any:
        created = await self.bulk_create(collection, [data])
        return created[0]

    async def bulk_create(self, collection: Collection, rows: Iterable[Mapping[str, Any]]) -> list[Any]:
        model = self._model(collection)
        objs = [model(tenant_id=self.tenant_id, **self._columns(model, row, allow_id=True)) for row in rows]
        if not objs:
            return []
        async with self._session() as session:
            session.add_all(objs)
            await session.commit()
            for obj in objs:
                await session.refresh(obj)
            return [self._to_record(collection, obj) for obj in objs]

    async def update(
        self,
        collection: Collection,
        record_id: UUID,
        partial: Mapping[str, Any],
        *,
        expected_version: int | None = None,
    ) -> Any:
        model = self._model(collection)
        values = self._columns(model, partial, allow_id=False)
        stmt = update(model).where(model.id == record_id, model.tenant_id == self.tenant_id)
        if expected_version is not None:
            stmt = stmt.where(model.version == expected_version)
            values["version"] = expected_version + 1

        async with self._session() as session:
            result = await session.execute(stmt.values(**values))
            await session.commit()
            matched = result.rowcount

        if not matched:
            current = await self.get(collection, record_id)
            if current is None:
                raise NotFoundError(Collection(collection).value, record_id)
            logger.warning(
                "Version conflict on %s %s: expected version %s, found %s",
                collection, record_id, expected_version, getattr(current, "version", None),
            )
            raise LedgerConflictError(
                Collection(collection).value,
                record_id,
                expected=f"version {expected_version}",
                actual=f"version {getattr(current, 'version', None)}",
            )

        updated = await self.get(collection, record_id)
        if updated is None:
            raise NotFoundError(Collection(collection).value, record_id)
        return updated

    async def delete(self, collection: Collection, record_id: UUID) -> None:
        model = self._model(collection)
        async with self._session() as session:
            result = await session.execute(
                select(model).where(model.id == record_id, model.tenant_id == self.tenant_id)
            )
            obj = result.scalar_one_or_none()
            if obj is None:
                raise NotFoundError(Collection(collection).value, record_id)
            await session.delete(obj)
            await session.commit()
