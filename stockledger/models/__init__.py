"""StockLedger — SQLAlchemy models."""
from stockledger.models.order import ImportBatch, ImportBatchType, Order, OrderLine, OrderStatus
from stockledger.models.purchase import PurchaseLot
from stockledger.models.sku import SKU
from stockledger.models.stock import CurrentStock, MovementType, ReferenceType, ReturnCondition, StockMovement
from stockledger.models.tenant import Tenant

__all__ = [
    "Tenant",
    "SKU",
    "PurchaseLot",
    "CurrentStock", "StockMovement", "MovementType", "ReferenceType", "ReturnCondition",
    "ImportBatch", "ImportBatchType", "Order", "OrderLine", "OrderStatus",
]
