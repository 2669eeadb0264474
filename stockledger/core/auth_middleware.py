"""StockLedger — Resolves the calling tenant from the bearer token onto request.state."""
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from stockledger.core.security import read_tenant_token


class TenantAuthMiddleware(BaseHTTPMiddleware):
    """Sets request.state.tenant_id / actor_id; endpoints reject a missing tenant with 401."""

    PUBLIC_PATHS = {"/health", "/api/v1/docs", "/api/v1/redoc", "/api/v1/openapi.json"}

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request.state.tenant_id = None
        request.state.actor_id = None

        scheme, _, token = request.headers.get("Authorization", "").partition(" ")
        if request.url.path not in self.PUBLIC_PATHS and scheme == "Bearer" and token:
            claims = read_tenant_token(token.strip())
            if claims is not None:
                request.state.tenant_id = claims.tenant_id
                request.state.actor_id = claims.actor

        return await call_next(request)
