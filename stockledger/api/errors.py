"""StockLedger — Maps domain errors onto HTTP responses in the {data, error, meta} envelope."""
import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

from stockledger.core.errors import (
    IntegrityWarningError,
    LedgerConflictError,
    NotFoundError,
    StockLedgerError,
    TransientError,
    ValidationError,
)
from stockledger.schemas.common import error_response

logger = logging.getLogger(__name__)


def status_for(exc: StockLedgerError) -> int:
    if isinstance(exc, NotFoundError):
        return 404
    if isinstance(exc, ValidationError):
        return 400
    if isinstance(exc, (IntegrityWarningError, LedgerConflictError)):
        return 409
    if isinstance(exc, TransientError):
        return 503
    return 500


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(StockLedgerError)
    async def _domain_exc(req: Request, exc: StockLedgerError):
        status_code = status_for(exc)
        if status_code >= 500:
            logger.error("%s %s failed: %s", req.method, req.url.path, exc)
        data = exc.to_dict()
        return JSONResponse(
            status_code=status_code,
            content=error_response(data.pop("code"), data.pop("message"), data),
        )

    @app.exception_handler(HTTPException)
    async def _http_exc(req: Request, exc: HTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content=error_response("HTTP_ERROR", str(exc.detail)),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def _validation_exc(req: Request, exc: RequestValidationError):
        field_errors = [
            {"field": ".".join(str(p) for p in e.get("loc", ())), "message": e.get("msg", "invalid")}
            for e in exc.errors()
        ]
        return JSONResponse(
            status_code=422,
            content=error_response("REQUEST_VALIDATION_ERROR", "Request body is invalid",
                                   {"field_errors": field_errors}),
        )

    @app.exception_handler(Exception)
    async def _unhandled_exc(req: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", req.method, req.url.path)
        return JSONResponse(status_code=500, content=error_response("INTERNAL_ERROR", "Internal server error"))
