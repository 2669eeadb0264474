from __future__ import annotations

import uuid
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from stockledger.db.base import Base
from stockledger.db.session import make_engine, make_session_factory
from stockledger.models import Tenant
from stockledger.store import SqlRecordStore
from tests.fakes import FaultInjectingStore, MemoryRecordStore


# =========================================
# One sqlite file per test (NullPool: every store call gets its own connection)
# =========================================
@pytest_asyncio.fixture
async def async_engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    engine = make_engine(f"sqlite+aiosqlite:///{tmp_path / 'ledger.db'}", pooled=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    try:
        yield engine
    finally:
        await engine.dispose()


@pytest.fixture
def session_maker(async_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return make_session_factory(async_engine)


@pytest_asyncio.fixture
async def tenant_id(session_maker) -> uuid.UUID:
    tenant = Tenant(id=uuid.uuid4(), name="Test Tenant", slug=f"t-{uuid.uuid4().hex[:8]}")
    async with session_maker() as session:
        session.add(tenant)
        await session.commit()
    return tenant.id


@pytest.fixture
def sql_store(session_maker, tenant_id) -> SqlRecordStore:
    return SqlRecordStore(session_maker, tenant_id)


@pytest.fixture
def memory_store() -> MemoryRecordStore:
    return MemoryRecordStore()


@pytest.fixture
def faulty_store(memory_store) -> FaultInjectingStore:
    return FaultInjectingStore(memory_store)
