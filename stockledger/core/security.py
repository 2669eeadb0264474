"""StockLedger — Tenant bearer tokens.

Tokens are minted by the identity service; this process only needs to read
them. ``issue_tenant_token`` exists for operator tooling and tests.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from uuid import UUID

from jose import JWTError, jwt

from stockledger.config import get_settings

logger = logging.getLogger(__name__)

TOKEN_TYPE = "access"


@dataclass(frozen=True)
class TenantClaims:
    tenant_id: UUID
    actor: str | None = None


def issue_tenant_token(actor: str, tenant_id: UUID | str, ttl_minutes: int | None = None) -> str:
    settings = get_settings()
    now = datetime.now(timezone.utc)
    ttl = ttl_minutes or settings.JWT_ACCESS_TOKEN_TTL_MINUTES
    claims = {
        "sub": actor,
        "tenant_id": str(tenant_id),
        "type": TOKEN_TYPE,
        "iat": now,
        "exp": now + timedelta(minutes=ttl),
    }
    return jwt.encode(claims, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def read_tenant_token(token: str) -> TenantClaims | None:
    """Claims of a valid access token, or None when it is expired, forged or has no usable tenant."""
    settings = get_settings()
    try:
        payload = jwt.decode(token, settings.JWT_SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])
    except JWTError:
        return None
    if payload.get("type") != TOKEN_TYPE or not payload.get("tenant_id"):
        return None
    try:
        return TenantClaims(tenant_id=UUID(payload["tenant_id"]), actor=payload.get("sub"))
    except ValueError:
        logger.warning("Rejected token with malformed tenant_id %r", payload.get("tenant_id"))
        return None
