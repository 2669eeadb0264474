import uuid

import pytest

from stockledger.core.errors import LedgerConflictError, NotFoundError, ValidationError
from stockledger.models import Tenant
from stockledger.store import SqlRecordStore
from stockledger.store.base import Collection
from tests.factories import make_sku


async def test_versioned_update_is_compare_and_swap(sql_store):
    sku = await make_sku(sql_store)
    row = await sql_store.first(Collection.CURRENT_STOCK, {"sku_id": sku.id})

    updated = await sql_store.update(
        Collection.CURRENT_STOCK, row.id, {"quantity_available": 4}, expected_version=row.version
    )
    assert updated.version == row.version + 1

    with pytest.raises(LedgerConflictError):
        await sql_store.update(
            Collection.CURRENT_STOCK, row.id, {"quantity_available": 9}, expected_version=row.version
        )
    assert (await sql_store.get(Collection.CURRENT_STOCK, row.id)).quantity_available == 4


async def test_records_are_tenant_scoped(sql_store, session_maker):
    other_tenant = Tenant(id=uuid.uuid4(), name="Other", slug="other")
    async with session_maker() as session:
        session.add(other_tenant)
        await session.commit()
    other = SqlRecordStore(session_maker, other_tenant.id)
    sku = await make_sku(sql_store)

    assert await other.get(Collection.SKUS, sku.id) is None
    assert await other.list(Collection.SKUS) == []
    with pytest.raises(NotFoundError):
        await other.update(Collection.SKUS, sku.id, {"name": "stolen"})
    with pytest.raises(NotFoundError):
        await other.delete(Collection.SKUS, sku.id)


async def test_unknown_fields_are_rejected(sql_store):
    with pytest.raises(ValidationError):
        await sql_store.create(Collection.SKUS, {"sku_code": "X", "colour": "red"})
    with pytest.raises(ValidationError):
        await sql_store.list(Collection.SKUS, {"colour": "red"})


async def test_missing_record(sql_store):
    assert await sql_store.get(Collection.ORDERS, uuid.uuid4()) is None
    with pytest.raises(NotFoundError):
        await sql_store.update(Collection.ORDERS, uuid.uuid4(), {"order_number": "X"})


async def test_iterable_filter_means_in(sql_store):
    a = await make_sku(sql_store, "SKU-A")
    b = await make_sku(sql_store, "SKU-B")
    await make_sku(sql_store, "SKU-C")

    rows = await sql_store.list(Collection.SKUS, {"id": [a.id, b.id]})

    assert {r.sku_code for r in rows} == {"SKU-A", "SKU-B"}
