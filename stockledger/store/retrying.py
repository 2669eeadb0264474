"""StockLedger — RecordStore wrapper that retries rate-limited calls with backoff."""
from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any
from uuid import UUID

from stockledger.core.retry import call_with_backoff
from stockledger.store.base import Collection, Filters, RecordStore


class RetryingRecordStore(RecordStore):
    """
    Delegates to ``inner`` and retries TransientError up to ``max_attempts``.

    Retries happen per store call, never per business operation, so a retried
    call can not replay writes that already succeeded.
    """

    def __init__(
        self,
        inner: RecordStore,
        *,
        max_attempts: int | None = None,
        base_delay: float | None = None,
        max_delay: float | None = None,
    ):
        self.inner = inner
        self.tenant_id = inner.tenant_id
        self._policy = {"max_attempts": max_attempts, "base_delay": base_delay, "max_delay": max_delay}

    async def _call(self, label: str, fn):
        return await call_with_backoff(fn, label=label, **self._policy)

    async def list(self, collection: Collection, filters: Filters | None = None) -> list[Any]:
        return await self._call(f"list {collection}", lambda: self.inner.list(collection, filters))

    async def get(self, collection: Collection, record_id: UUID) -> Any | None:
        return await self._call(f"get {collection}", lambda: self.inner.get(collection, record_id))

    async def create(self, collection: Collection, data: Mapping[str, Any]) -> Any:
        return await self._call(f"create {collection}", lambda: self.inner.create(collection, data))

    async def bulk_create(self, collection: Collection, rows: Iterable[Mapping[str, Any]]) -> list[Any]:
        rows = [dict(r) for r in rows]
        return await self._call(f"bulk_create {collection}", lambda: self.inner.bulk_create(collection, rows))

    async def update(
        self,
        collection: Collection,
        record_id: UUID,
        partial: Mapping[str, Any],
        *,
        expected_version: int | None = None,
    ) -> Any:
        return await self._call(
            f"update {collection}",
            lambda: self.inner.update(collection, record_id, partial, expected_version=expected_version),
        )

    async def delete(self, collection: Collection, record_id: UUID) -> None:
        return await self._call(f"delete {collection}", lambda: self.inner.delete(collection, record_id))
