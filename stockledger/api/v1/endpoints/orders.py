"""StockLedger — Order endpoints: create, cost preview, fulfill, return, delete."""
from uuid import UUID

from fastapi import APIRouter, status

from stockledger.api.deps import Store
from stockledger.schemas.common import ApiResponse
from stockledger.schemas.order import (
    CostPreviewResponse,
    LineCostPreview,
    LotTake,
    OrderCreate,
    OrderDeleteResponse,
    OrderLineResponse,
    OrderResponse,
    ReturnRequest,
)
from stockledger.schemas.records import OrderRecord
from stockledger.services.fulfillment_service import FulfillmentService
from stockledger.store.base import RecordStore

router = APIRouter()


async def _order_response(store: RecordStore, order: OrderRecord) -> OrderResponse:
    lines = await FulfillmentService.get_lines(store, order.id)
    response = OrderResponse.model_validate(order)
    response.lines = [OrderLineResponse.model_validate(line) for line in lines]
    return response


@router.post("", response_model=ApiResponse[OrderResponse], status_code=status.HTTP_201_CREATED)
async def create_order(body: OrderCreate, store: Store):
    order, _ = await FulfillmentService.create_order(
        store,
        body.order_number,
        [line.model_dump() for line in body.lines],
        net_revenue=body.net_revenue,
    )
    return ApiResponse(data=await _order_response(store, order))


@router.get("/{id}", response_model=ApiResponse[OrderResponse])
async def get_order(id: UUID, store: Store):
    order = await FulfillmentService.get_order(store, id)
    return ApiResponse(data=await _order_response(store, order))


@router.get("/{id}/cost-preview", response_model=ApiResponse[CostPreviewResponse])
async def cost_preview(id: UUID, store: Store):
    """FIFO cost the order would book now. No writes."""
    plan = await FulfillmentService.preview_cost(store, id)
    return ApiResponse(data=CostPreviewResponse(
        order_id=plan.order.id,
        total_cost=plan.total_cost,
        lines=[
            LineCostPreview(
                line_id=la.line.id,
                sku_id=la.line.sku_id,
                quantity=la.line.quantity,
                unit_cost=la.allocation.unit_cost,
                line_cost=la.allocation.line_cost,
                shortfall_qty=la.allocation.shortfall_qty,
                consumption=[
                    LotTake(lot_id=c.lot_id, quantity=c.quantity, cost_per_unit=c.cost_per_unit)
                    for c in la.allocation.consumption
                ],
            )
            for la in plan.lines
        ],
    ))


@router.post("/{id}/fulfill", response_model=ApiResponse[OrderResponse])
async def fulfill_order(id: UUID, store: Store):
    order = await FulfillmentService.fulfill(store, id)
    return ApiResponse(data=await _order_response(store, order))


@router.post("/{id}/returns", response_model=ApiResponse[OrderResponse])
async def return_lines(id: UUID, body: ReturnRequest, store: Store):
    """Return selected lines, each with a condition: sound, damaged or missing."""
    order = await FulfillmentService.return_lines(
        store,
        id,
        {item.line_id: item.condition for item in body.lines},
        return_date=body.return_date,
    )
    return ApiResponse(data=await _order_response(store, order))


@router.delete("/{id}", response_model=ApiResponse[OrderDeleteResponse])
async def delete_order(id: UUID, store: Store):
    deletion = await FulfillmentService.delete_order(store, id)
    return ApiResponse(data=OrderDeleteResponse(order_id=deletion.order_id, restored_units=deletion.restored_units))
