"""StockLedger — Async SQLAlchemy engine and session factory."""
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from stockledger.config import get_settings


def make_engine(url: str | None = None, *, pooled: bool = True) -> AsyncEngine:
    """Engine for ``url`` (default DATABASE_URL). Unpooled engines are for short-lived event loops."""
    settings = get_settings()
    if not pooled:
        return create_async_engine(url or settings.DATABASE_URL, poolclass=NullPool)
    return create_async_engine(
        url or settings.DATABASE_URL,
        pool_pre_ping=True,
        pool_size=5,
        max_overflow=10,
        echo=settings.DEBUG,
    )


def make_session_factory(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    # Records are copied out of the session on every store call, never lazily loaded.
    return async_sessionmaker(bind, class_=AsyncSession, expire_on_commit=False, autoflush=False)


engine = make_engine()
async_session_maker = make_session_factory(engine)
