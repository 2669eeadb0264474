import pytest

from stockledger.core.errors import NotFoundError, ValidationError
from stockledger.services.sku_service import SKUService
from stockledger.store.base import Collection
from tests.factories import make_sku


async def test_create_sku_starts_with_zero_stock(memory_store):
    sku = await make_sku(memory_store, "SKU-A", cost_price="4.5")

    row = await memory_store.first(Collection.CURRENT_STOCK, {"sku_id": sku.id})
    assert row.quantity_available == 0
    assert str(sku.cost_price) == "4.5"


async def test_duplicate_and_blank_codes_rejected(memory_store):
    await make_sku(memory_store, "SKU-A")
    with pytest.raises(ValidationError):
        await make_sku(memory_store, "SKU-A")
    with pytest.raises(ValidationError):
        await make_sku(memory_store, "   ")
    with pytest.raises(ValidationError):
        await make_sku(memory_store, "SKU-B", cost_price="-1")


async def test_search_matches_code_or_name(memory_store):
    await SKUService.create_sku(memory_store, "B-200", name="Blue mug")
    await SKUService.create_sku(memory_store, "A-100", name="Red mug")
    await SKUService.create_sku(memory_store, "C-300", name="Plate")

    assert [s.sku_code for s in await SKUService.get_skus(memory_store, search="mug")] == ["A-100", "B-200"]
    assert [s.sku_code for s in await SKUService.get_skus(memory_store, search="c-3")] == ["C-300"]


async def test_get_by_id_raises_for_unknown(memory_store):
    with pytest.raises(NotFoundError):
        await SKUService.get_by_id(memory_store, memory_store.tenant_id)
