from __future__ import annotations

import os

# Settings are read at import time; provide test values before importing app.*
os.environ.setdefault("DATABASE_URL_ASYNC", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("JWT_SECRET", "test-secret-for-automation-only-0123456789")
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("LOG_JSON", "false")
os.environ.setdefault("LOG_LEVEL", "WARNING")

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

from app.db.session import enable_sqlite_foreign_keys, get_db, init_models

# Ensure Base + models are registered before create_all
import app.models  # noqa: F401


DEFAULT_PASSWORD = "Passw0rd!"


# ---------------------------------------------------------
# Engine: a fresh sqlite file per test
# ---------------------------------------------------------
@pytest_asyncio.fixture()
async def engine(tmp_path):
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'martly-test.db'}",
        future=True,
        echo=False,
        poolclass=NullPool,
    )
    enable_sqlite_foreign_keys(engine)
    await init_models(engine)

    yield engine

    await engine.dispose()


@pytest.fixture()
def sessionmaker(engine):
    return async_sessionmaker(
        engine, class_=AsyncSession, expire_on_commit=False, autoflush=False
    )


# ---------------------------------------------------------
# DB session for crud-level tests
# ---------------------------------------------------------
@pytest_asyncio.fixture()
async def db(sessionmaker):
    async with sessionmaker() as session:
        yield session
        await session.rollback()


# ---------------------------------------------------------
# FastAPI app + dependency override
# ---------------------------------------------------------
@pytest.fixture()
def app(sessionmaker):
    from app.main import app as fastapi_app

    async def _override_get_db():
        async with sessionmaker() as session:
            yield session

    fastapi_app.dependency_overrides[get_db] = _override_get_db
    yield fastapi_app
    fastapi_app.dependency_overrides.clear()


# ---------------------------------------------------------
# HTTP client
# ---------------------------------------------------------
@pytest_asyncio.fixture()
async def client(app):
    transport = ASGITransport(app=app)
    async with AsyncClient(
        transport=transport,
        base_url="http://test",
    ) as ac:
        yield ac


# ---------------------------------------------------------
# API helpers
# ---------------------------------------------------------
def bearer(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


async def register_company(
    client: AsyncClient,
    email: str,
    company: str,
    password: str = DEFAULT_PASSWORD,
    plan: str | None = None,
):
    body = {"email": email, "password": password, "companyName": company}
    if plan is not None:
        body["plan"] = plan
    return await client.post("/api/v1/auth/register", json=body)


async def login(
    client: AsyncClient,
    email: str,
    password: str = DEFAULT_PASSWORD,
    company: str | None = None,
):
    body = {"email": email, "password": password}
    if company is not None:
        body["company"] = company
    return await client.post("/api/v1/auth/login", json=body)


async def create_employee(
    client: AsyncClient,
    token: str,
    email: str,
    role: str,
    store_id: str | None = None,
    password: str = DEFAULT_PASSWORD,
):
    body = {"email": email, "password": password, "role": role}
    if store_id is not None:
        body["storeId"] = store_id
    return await client.post("/api/v1/users", json=body, headers=bearer(token))
