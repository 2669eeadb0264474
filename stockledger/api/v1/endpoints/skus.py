"""StockLedger — SKU endpoints. GET /skus, POST /skus."""
from fastapi import APIRouter, status

from stockledger.api.deps import Store
from stockledger.schemas.common import ApiResponse, Meta
from stockledger.schemas.sku import SKUCreate, SKUResponse
from stockledger.services.sku_service import SKUService

router = APIRouter()


@router.get("", response_model=ApiResponse[list[SKUResponse]])
async def list_skus(store: Store, search: str | None = None):
    skus = await SKUService.get_skus(store, search=search)
    return ApiResponse(data=[SKUResponse.model_validate(s) for s in skus], meta=Meta(total_count=len(skus)))


@router.post("", response_model=ApiResponse[SKUResponse], status_code=status.HTTP_201_CREATED)
async def create_sku(body: SKUCreate, store: Store):
    """Create a SKU; its stock row starts at zero."""
    sku = await SKUService.create_sku(store, body.sku_code, name=body.name, cost_price=body.cost_price)
    return ApiResponse(data=SKUResponse.model_validate(sku))
