"""StockLedger — Common response envelope: {data, error, meta}."""
from typing import Any, Generic, TypeVar

from pydantic import BaseModel

T = TypeVar("T")


class Meta(BaseModel):
    """Listing metadata."""

    total_count: int | None = None


class ApiResponse(BaseModel, Generic[T]):
    """Standard response envelope."""

    data: T | None = None
    error: dict[str, Any] | None = None
    meta: Meta | None = None


def error_response(code: str, message: str, details: dict | None = None) -> dict:
    return {
        "data": None,
        "error": {"code": code, "message": message, **(details or {})},
        "meta": None,
    }
