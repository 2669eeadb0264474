"""StockLedger — FastAPI dependencies: tenant resolution and the tenant-scoped store."""
from typing import Annotated
from uuid import UUID

from fastapi import Depends, HTTPException, Request, status

from stockledger.db.session import async_session_maker
from stockledger.store import RecordStore, RetryingRecordStore, SqlRecordStore


async def require_tenant(request: Request) -> UUID:
    """Tenant from request.state (populated by TenantAuthMiddleware). 401 when absent."""
    tenant_id = getattr(request.state, "tenant_id", None)
    if tenant_id is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
    return tenant_id


async def get_store(tenant_id: UUID = Depends(require_tenant)) -> RecordStore:
    """SQL store for the calling tenant, retrying rate-limited calls."""
    return RetryingRecordStore(SqlRecordStore(async_session_maker, tenant_id))


TenantId = Annotated[UUID, Depends(require_tenant)]
Store = Annotated[RecordStore, Depends(get_store)]
