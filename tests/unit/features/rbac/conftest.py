from __future__ import annotations

from collections.abc import AsyncIterator

import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

import rolegraph.models  # noqa: F401
from rolegraph.db import Base
from rolegraph.features.rbac.service import RbacService
from rolegraph.settings import Settings


@pytest_asyncio.fixture()
async def session() -> AsyncIterator[AsyncSession]:
    """Provide an isolated in-memory database session for RBAC unit tests."""

    engine = create_async_engine("sqlite+aiosqlite:///:memory:")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    Session = async_sessionmaker(engine, expire_on_commit=False)
    async with Session() as session:
        yield session
    await engine.dispose()


@pytest_asyncio.fixture()
async def rbac(session: AsyncSession) -> RbacService:
    settings = Settings(database_dsn="sqlite+aiosqlite:///:memory:", converge_max_iterations=50)
    return RbacService(session=session, settings=settings)
