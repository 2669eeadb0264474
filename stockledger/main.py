"""StockLedger — FastAPI application: ledger API under /api/v1 plus /health."""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from stockledger import __version__
from stockledger.api.errors import register_exception_handlers
from stockledger.api.v1.router import api_router
from stockledger.config import get_settings
from stockledger.core.auth_middleware import TenantAuthMiddleware
from stockledger.core.logging import configure_logging
from stockledger.core.redis import close_redis
from stockledger.db.session import engine

logger = logging.getLogger(__name__)
settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    logger.info("StockLedger %s starting (%s)", __version__, settings.ENVIRONMENT)
    yield
    await close_redis()
    await engine.dispose()


app = FastAPI(
    title="StockLedger",
    description="FIFO inventory costing and stock ledger engine",
    version=__version__,
    docs_url="/api/v1/docs",
    redoc_url="/api/v1/redoc",
    openapi_url="/api/v1/openapi.json",
    lifespan=lifespan,
)
app.add_middleware(TenantAuthMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "DELETE"],
    allow_headers=["Authorization", "Content-Type"],
)
register_exception_handlers(app)
app.include_router(api_router, prefix="/api/v1")


@app.get("/health")
async def health():
    return {"status": "ok", "service": "stockledger", "version": __version__}
