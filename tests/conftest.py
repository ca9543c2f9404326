"""
Shared fixtures for the test suite.

The application reads its settings at import time, so the environment is
prepared before anything under `app` is imported: a throwaway SQLite file via
aiosqlite stands in for PostgreSQL, and bcrypt runs at its cheapest cost.
"""
import os
import tempfile

_TMP_DIR = tempfile.mkdtemp(prefix="task-tracker-tests-")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{os.path.join(_TMP_DIR, 'test.db')}"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["SECRET_KEY"] = "test-secret"

import pytest
from httpx import ASGITransport, AsyncClient

from app import database
from app.database import AsyncSessionLocal, Base
from app.main import app as fastapi_app
from app.services.supervisor import CircuitBreaker, IdleSupervisor

from tests.factories import make_project, make_user


@pytest.fixture
async def db_schema():
    async with database.engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    fastapi_app.state.circuit_breaker = CircuitBreaker()
    fastapi_app.state.idle_supervisor = IdleSupervisor()
    yield
    # Pooled aiosqlite connections are bound to this test's event loop
    await database.engine.dispose()


@pytest.fixture
async def db(db_schema):
    async with AsyncSessionLocal() as session:
        yield session


@pytest.fixture
async def client(db_schema):
    async with AsyncClient(transport=ASGITransport(app=fastapi_app), base_url="http://test") as ac:
        yield ac


@pytest.fixture
def app():
    return fastapi_app


@pytest.fixture
async def admin(db):
    return await make_user(db, "admin", team="PM", is_admin=True)


@pytest.fixture
async def alice(db):
    return await make_user(db, "alice", team="PM")


@pytest.fixture
async def bob(db):
    return await make_user(db, "bob", team="PM")


@pytest.fixture
async def carol(db):
    return await make_user(db, "carol", team="CC")


@pytest.fixture
async def project(db):
    return await make_project(db, "Alpha")
