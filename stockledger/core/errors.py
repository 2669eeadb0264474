"""StockLedger — Typed error hierarchy for the stock ledger engine.

Every error carries a machine-readable ``code`` and is scoped to a single
order, lot or line. Nothing here is fatal to the process:

    StockLedgerError
    +-- ValidationError            rejected before any write, shown verbatim
    |   +-- NotFoundError
    |   +-- InsufficientStockError
    |   +-- InvalidTransitionError
    +-- LedgerConflictError        a fresh read disagreed with the plan
    +-- TransientError             rate limited; retried with backoff
    |   +-- RateLimitedError
    +-- IntegrityWarningError      needs an explicit user decision
"""
from dataclasses import asdict, dataclass
from uuid import UUID


class StockLedgerError(Exception):
    """Base exception for all stock ledger errors."""

    code: str = "STOCK_LEDGER_ERROR"

    def to_dict(self) -> dict:
        return {"code": self.code, "message": str(self)}


class ValidationError(StockLedgerError, ValueError):
    """Input or state rejected before anything was written."""

    code = "VALIDATION_ERROR"


class NotFoundError(ValidationError):
    code = "NOT_FOUND"

    def __init__(self, collection: str, record_id: UUID | str):
        self.collection = collection
        self.record_id = record_id
        super().__init__(f"{collection} record {record_id} not found")


class InsufficientStockError(ValidationError):
    """One or more SKUs cannot cover the requested quantity."""

    code = "INSUFFICIENT_STOCK"

    def __init__(self, message: str, shortages: list[dict] | None = None):
        self.shortages = shortages or []
        super().__init__(message)

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["shortages"] = self.shortages
        return data


class InvalidTransitionError(ValidationError):
    code = "INVALID_STATUS_TRANSITION"

    def __init__(self, order_id: UUID | str, status: str, action: str):
        self.order_id = order_id
        self.status = status
        self.action = action
        super().__init__(f"Cannot {action} order {order_id} in status '{status}'")


class LedgerConflictError(StockLedgerError):
    """A counter changed underneath an in-flight operation."""

    code = "STOCK_LEDGER_CONFLICT"

    def __init__(self, collection: str, record_id: UUID | str, expected, actual):
        self.collection = collection
        self.record_id = record_id
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Stock ledger conflict on {collection} {record_id}: expected {expected}, found {actual}"
        )

    def to_dict(self) -> dict:
        data = super().to_dict()
        data.update(collection=self.collection, record_id=str(self.record_id),
                    expected=str(self.expected), actual=str(self.actual))
        return data


class TransientError(StockLedgerError):
    """Retryable failure of the storage collaborator."""

    code = "TRANSIENT_ERROR"


class RateLimitedError(TransientError):
    code = "RATE_LIMITED"

    def __init__(self, message: str = "Rate limit exceeded"):
        super().__init__(message)


@dataclass(frozen=True)
class IntegrityWarning:
    """Outcome preview of deleting a purchase lot."""

    lot_id: UUID
    sku_id: UUID
    quantity_available: int
    deduction: int
    resulting_available: int

    @property
    def would_go_negative(self) -> bool:
        return self.resulting_available < 0

    def to_dict(self) -> dict:
        data = asdict(self)
        data["lot_id"] = str(self.lot_id)
        data["sku_id"] = str(self.sku_id)
        data["would_go_negative"] = self.would_go_negative
        return data


class IntegrityWarningError(StockLedgerError):
    """Raised instead of applying a change the user has not consented to."""

    code = "INTEGRITY_WARNING"

    def __init__(self, warning: IntegrityWarning, message: str | None = None):
        self.warning = warning
        super().__init__(
            message
            or f"Deleting lot {warning.lot_id} would drive stock to {warning.resulting_available}; "
            "choose 'deduct' with acknowledgement or 'keep'"
        )

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["warning"] = self.warning.to_dict()
        return data
