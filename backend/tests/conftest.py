import os

# Settings refuse to load without a signing secret.
os.environ.setdefault("SECRET_KEY", "test-secret")

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from fakeredis.aioredis import FakeRedis

from snackmatch.domain.snack import sockets as snack_sockets
from snackmatch.domain.snack.repository import reset_memory_state
from snackmatch.infra import postgres
from snackmatch.infra.redis import set_redis_client
from snackmatch.main import app
from snackmatch.settings import settings


@pytest_asyncio.fixture(autouse=True)
async def fake_redis():
	client = FakeRedis(decode_responses=True)
	original = set_redis_client(client)
	try:
		yield client
	finally:
		await client.flushall()
		set_redis_client(original)


@pytest.fixture(autouse=True)
def patch_postgres(monkeypatch):
	async def _noop():
		return None

	monkeypatch.setattr(postgres, "init_pool", _noop)
	monkeypatch.setattr(postgres, "close_pool", _noop)


@pytest.fixture(autouse=True)
def force_test_settings():
	"""Run every test in dev mode so X-User-Id/X-Campus-Id headers authenticate."""
	original_env = settings.environment
	settings.environment = "dev"
	try:
		yield
	finally:
		settings.environment = original_env


@pytest_asyncio.fixture(autouse=True)
async def snack_state():
	await reset_memory_state()
	original_namespace = snack_sockets.get_namespace()
	try:
		yield
	finally:
		snack_sockets.set_namespace(original_namespace)
		await reset_memory_state()


@pytest_asyncio.fixture
async def api_client():
	transport = ASGITransport(app=app)
	async with AsyncClient(transport=transport, base_url="http://testserver") as client:
		yield client