# ==== SHARED TEST FIXTURES AND CONFIGURATION ==== #

"""
Shared test fixtures for ManagerOS.

Every test gets its own SQLite database (aiosqlite) created from the
models, a session bound to it, factories for organization data and an
HTTP client wired to the FastAPI application.
"""

import os
from datetime import datetime

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport


# ==== FORCE ENVIRONMENT SETUP BEFORE ANY IMPORTS ==== #

# Set environment variables BEFORE importing any manageros modules
os.environ.update({
    "APP_ENV": "test",
    "DATABASE_URL": "sqlite+aiosqlite:///./test-manageros.db",
    "JWT_SECRET": "test-secret-key-for-testing-only",
    "LOG_LEVEL": "WARNING",
})

import manageros.storage.db as db_module
from manageros.business.tolerance import OrganizationRole
from manageros.main import create_app
from manageros.security.auth import CallerContext
from tests.factories.data_factories import OrganizationFactory


# ==== DATABASE FIXTURES ==== #


@pytest_asyncio.fixture
async def database(tmp_path):
    """
    Fresh SQLite database for one test.

    Resets the module level engine so services, routes and flows all use
    the per-test database file.
    """
    db_module.engine = None
    db_module.SessionLocal = None
    db_module.init_database(f"sqlite+aiosqlite:///{tmp_path / 'manageros.db'}")
    await db_module.create_schema()

    yield

    await db_module.close_database()


@pytest_asyncio.fixture
async def db_session(database):
    """Database session for direct service calls."""
    async with db_module.SessionLocal() as session:
        yield session


# ==== DATA FIXTURES ==== #


@pytest.fixture
def now():
    """Fixed evaluation time, naive UTC like the stored timestamps."""
    return datetime(2026, 10, 1, 12, 0, 0)


@pytest_asyncio.fixture
async def org(db_session):
    """Organization with data factories bound to it."""
    return await OrganizationFactory.create(db_session, "Acme")


@pytest_asyncio.fixture
async def other_org(db_session):
    """Second organization for tenant isolation tests."""
    return await OrganizationFactory.create(db_session, "Globex")


@pytest.fixture
def admin_ctx(org):
    return CallerContext(user_id="admin-1", organization_id=org.id, role=OrganizationRole.ADMIN)


@pytest.fixture
def user_ctx(org):
    return CallerContext(user_id="user-1", organization_id=org.id, role=OrganizationRole.USER)


@pytest.fixture
def orphan_ctx():
    """Caller without an organization."""
    return CallerContext(user_id="orphan-1", organization_id=None, role=OrganizationRole.ADMIN)


# ==== APPLICATION FIXTURES ==== #


@pytest_asyncio.fixture
async def app(database):
    """FastAPI application using the per-test database."""
    return create_app()


@pytest_asyncio.fixture
async def client(app):
    """
    Create test client.

    Returns:
        AsyncClient: HTTP test client instance
    """
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

