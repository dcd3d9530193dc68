"""
Fixtures compartidas para Pytest.
Configura base de datos de test (SQLite temporal), repositorio y cliente HTTP.
"""

from collections.abc import AsyncGenerator

import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

import app.models  # noqa: F401
from app.api.dependencies import get_odontogram_repository
from app.database import Base
from app.main import app
from app.services.odontogram_repository import SqlOdontogramRepository


@pytest_asyncio.fixture
async def session_factory(tmp_path) -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """Base SQLite nueva por test, con las tablas creadas."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        echo=False,
        poolclass=NullPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest_asyncio.fixture
async def repo(session_factory) -> SqlOdontogramRepository:
    return SqlOdontogramRepository(session_factory)


@pytest_asyncio.fixture
async def client(repo: SqlOdontogramRepository) -> AsyncGenerator[AsyncClient, None]:
    """Cliente HTTP de test que usa el repositorio sobre la DB de test."""
    app.dependency_overrides[get_odontogram_repository] = lambda: repo

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
