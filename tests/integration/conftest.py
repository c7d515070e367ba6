"""Integration test fixtures: the real app against an in-memory database."""

from collections.abc import AsyncGenerator

import pytest_asyncio
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from comp_admin.api.app import create_app
from comp_admin.api.dependencies import get_session_factory
from comp_admin.database import create_session_factory


@pytest_asyncio.fixture
async def app(engine) -> FastAPI:
    """App whose request sessions use the test engine."""
    app = create_app()
    factory = create_session_factory(engine)
    app.dependency_overrides[get_session_factory] = lambda: factory
    return app


@pytest_asyncio.fixture
async def client(app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    """Create async HTTP client for API testing."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest_asyncio.fixture
async def seeded(session: AsyncSession, employee, inr_employee, plan) -> AsyncSession:
    """Commit the shared employee and plan fixtures so requests can see them."""
    await session.commit()
    return session


@pytest_asyncio.fixture
async def add_rows(engine):
    """Insert rows in their own committed transaction."""
    factory = create_session_factory(engine)

    async def add(*rows) -> None:
        async with factory() as session:
            session.add_all(rows)
            await session.commit()

    return add
