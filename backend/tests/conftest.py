import sys
from pathlib import Path

import jwt
import pytest
import pytest_asyncio
from fakeredis.aioredis import FakeRedis
from httpx import ASGITransport, AsyncClient

# Ensure backend package is importable when tests run from repo root
BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
	sys.path.insert(0, str(BACKEND_ROOT))

from tribelife.domain.beacons import repo as beacons_repo
from tribelife.domain.chat import repo as chat_repo
from tribelife.domain.notifications import repo as notifications_repo
from tribelife.domain.profiles import Profile
from tribelife.domain.profiles import directory as profiles_directory
from tribelife.infra import postgres
from tribelife.settings import settings

TEST_SECRET = "tribelife-test-signing-secret-0123456789"


@pytest_asyncio.fixture(autouse=True)
async def fake_redis():
	from tribelife.infra.redis import redis_client, set_redis_client

	original = redis_client._client
	client = FakeRedis(decode_responses=True)
	set_redis_client(client)
	try:
		yield client
	finally:
		set_redis_client(original)
		await client.flushall()


@pytest.fixture(autouse=True)
def patch_postgres(monkeypatch):
	async def _noop():
		return None

	monkeypatch.setattr(postgres, "init_pool", _noop)
	monkeypatch.setattr(postgres, "close_pool", _noop)


@pytest.fixture(autouse=True)
def force_test_settings():
	"""Run against in-memory stores with a known signing secret."""
	original = (
		settings.environment,
		settings.jwt_secret,
		settings.match_scheduler_enabled,
		settings.admin_user_ids,
	)
	settings.environment = "test"
	settings.jwt_secret = TEST_SECRET
	settings.match_scheduler_enabled = False
	settings.admin_user_ids = (99,)
	try:
		yield
	finally:
		(
			settings.environment,
			settings.jwt_secret,
			settings.match_scheduler_enabled,
			settings.admin_user_ids,
		) = original


@pytest.fixture(autouse=True)
def reset_memory_stores():
	# Services built at import time hold references to these stores, so they
	# are reset in place instead of being replaced.
	for store in (
		profiles_directory._MEMORY,
		chat_repo._MEMORY_STORE,
		notifications_repo._MEMORY,
		beacons_repo._MEMORY,
	):
		store.__init__()
	yield


@pytest.fixture
def profiles():
	return profiles_directory._MEMORY


@pytest.fixture
def add_profile(profiles):
	async def _add(user_id: int, handle: str, **kwargs) -> Profile:
		profile = await profiles.add(Profile(user_id=user_id, handle=handle, **kwargs))
		chat_repo._MEMORY_STORE.handles[user_id] = profile.handle
		beacons_repo._MEMORY.handles[user_id] = profile.handle
		return profile

	return _add


@pytest.fixture
def token_for():
	def _token(user_id: int, **claims) -> str:
		return jwt.encode({"userId": user_id, **claims}, TEST_SECRET, algorithm="HS256")

	return _token


@pytest_asyncio.fixture
async def api_client():
	from tribelife.main import app

	transport = ASGITransport(app=app)
	async with AsyncClient(transport=transport, base_url="http://testserver") as client:
		yield client
