"""StockLedger — API v1 router aggregation."""
from fastapi import APIRouter

from stockledger.api.v1.endpoints import batches, orders, purchases, returns, skus, stock

api_router = APIRouter()

api_router.include_router(skus.router, prefix="/skus", tags=["skus"])
api_router.include_router(purchases.router, prefix="/purchases", tags=["purchases"])
api_router.include_router(orders.router, prefix="/orders", tags=["orders"])
api_router.include_router(returns.router, prefix="/returns", tags=["returns"])
api_router.include_router(batches.router, prefix="/batches", tags=["batches"])
api_router.include_router(stock.router, prefix="/stock", tags=["stock"])
