"""StockLedger — Return undo endpoint."""
from uuid import UUID

from fastapi import APIRouter

from stockledger.api.deps import Store
from stockledger.schemas.common import ApiResponse
from stockledger.schemas.order import OrderLineResponse, OrderResponse
from stockledger.services.fulfillment_service import FulfillmentService

router = APIRouter()


@router.post("/{movement_id}/undo", response_model=ApiResponse[OrderResponse])
async def undo_return(movement_id: UUID, store: Store):
    """Reverse a return movement and recompute the order status."""
    order = await FulfillmentService.undo_return(store, movement_id)
    response = OrderResponse.model_validate(order)
    response.lines = [
        OrderLineResponse.model_validate(line) for line in await FulfillmentService.get_lines(store, order.id)
    ]
    return ApiResponse(data=response)
