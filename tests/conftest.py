import os
import uuid

# Settings are read at import time, so the test environment goes in first
os.environ.setdefault("WRITE_TOKEN", "test-write-token")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")

import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.pool import StaticPool

from rowgate.main import app
from rowgate.core import statements
from rowgate.core.config import settings
from rowgate.core.database import Store, create_store_engine, get_store
from rowgate.core.dispatcher import RequestContext
from rowgate.core.log_delegate import ErrorDelegate


# Fresh in-memory database for every test; StaticPool keeps the single
# connection (and therefore the data) alive for the whole test
@pytest_asyncio.fixture(scope="function")
async def store():
    test_engine = create_store_engine("sqlite+aiosqlite://", poolclass=StaticPool)
    yield Store(test_engine)
    await test_engine.dispose()


# Request context wired to the test store, without log forwarding
@pytest_asyncio.fixture(scope="function")
async def ctx(store: Store):
    return RequestContext(
        store=store,
        delegate=ErrorDelegate(settings, request_id="test"),
        settings=settings,
        request_id="test",
    )


# Client
@pytest_asyncio.fixture(scope="function")
async def client(store: Store):
    async def override_get_store():
        yield store

    app.dependency_overrides[get_store] = override_get_store

    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test"
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest_asyncio.fixture(scope="function")
async def auth_headers():
    return {"Authorization": f"Bearer {settings.WRITE_TOKEN}"}


# Table with the shared layout and a non-unique c1
@pytest_asyncio.fixture(scope="function")
async def table(store: Store):
    name = f"t_{uuid.uuid4().hex[:8]}"
    await store.batch(
        [store.prepare_bound(s) for s in statements.build_create_table(name)]
    )
    return name


# Same, with c1 UNIQUE
@pytest_asyncio.fixture(scope="function")
async def unique_table(store: Store):
    name = f"u_{uuid.uuid4().hex[:8]}"
    await store.batch(
        [
            store.prepare_bound(s)
            for s in statements.build_create_table(name, c1_unique=True)
        ]
    )
    return name
