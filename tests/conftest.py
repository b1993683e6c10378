import os
import tempfile

# must be set before the app reads its config
os.environ["DB_URL"] = "sqlite+aiosqlite://"
os.environ["LOG_DIR"] = tempfile.mkdtemp(prefix="rewards-ledger-logs-")

import fakeredis
import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import (
	create_async_engine, AsyncSession, async_sessionmaker
)
from sqlalchemy.pool import StaticPool

from rewards_ledger.main import app
from rewards_ledger.core.database import Base
from rewards_ledger.core.dependencies import get_session
from rewards_ledger.utils import redis_cache


# fresh in-memory database for every test
@pytest_asyncio.fixture
async def engine():
	engine = create_async_engine(
		"sqlite+aiosqlite://",
		poolclass=StaticPool,
		connect_args={"check_same_thread": False},
	)
	async with engine.begin() as conn:
		await conn.run_sync(Base.metadata.create_all)

	yield engine

	await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(engine):
	return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def session(session_factory):
	async with session_factory() as session:
		yield session


@pytest.fixture
def fetch(session_factory):
	"""Reads rows through a separate session, outside of the services' transactions."""
	async def _fetch(stmt):
		async with session_factory() as s:
			result = await s.execute(stmt)
			return result.scalars().all()

	return _fetch


# Redis replaced by fakeredis in every test
@pytest.fixture(autouse=True)
def fake_redis(monkeypatch):
	client = fakeredis.FakeAsyncRedis(decode_responses=True)
	monkeypatch.setattr(redis_cache, "redis_client", client)
	return client


@pytest_asyncio.fixture
async def async_client(session_factory):
	async def get_test_session():
		async with session_factory() as session:
			yield session

	app.dependency_overrides[get_session] = get_test_session

	transport = ASGITransport(app=app)
	async with AsyncClient(transport=transport, base_url="http://test") as client:
		yield client

	app.dependency_overrides.clear()


# file database: separate connections really run concurrently
@pytest_asyncio.fixture
async def file_session_factory(tmp_path):
	engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'ledger.db'}")
	async with engine.begin() as conn:
		await conn.run_sync(Base.metadata.create_all)

	yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

	await engine.dispose()
