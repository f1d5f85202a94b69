"""Integration test fixtures: the API over the test database."""

from collections.abc import AsyncGenerator
from dataclasses import replace

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from thai_payroll.api.app import create_app
from thai_payroll.api.dependencies import get_session_factory
from thai_payroll.config import get_settings


@pytest.fixture
async def client(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client bound to the app with test database sessions.

    Seed data must be committed before a request is made; requests share
    the test connection.
    """
    app = create_app()
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_settings] = lambda: replace(get_settings(), tax_year=2025)

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
