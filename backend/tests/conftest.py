import asyncio
import sys
from pathlib import Path

import pytest
import pytest_asyncio
from fakeredis.aioredis import FakeRedis

# Ensure backend package is importable when tests run from repo root
BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
	sys.path.insert(0, str(BACKEND_ROOT))

from revere.domain.messaging import container
from revere.domain.messaging.models import MemberProfile
from revere.domain.messaging.profiles import InMemoryProfileDirectory
from revere.domain.messaging.repo import InMemoryMessagingRepository
from revere.domain.messaging.service import MessagingService
from revere.settings import settings


@pytest_asyncio.fixture(autouse=True)
async def fake_redis():
	from revere.infra.redis import redis_client, set_redis_client

	original = redis_client.client
	client = FakeRedis(decode_responses=True)
	set_redis_client(client)
	try:
		yield client
	finally:
		set_redis_client(original)
		await client.flushall()


@pytest.fixture(autouse=True)
def force_test_settings():
	"""Keep timeouts short and the container fresh for every test."""
	original_timeout = settings.messaging_op_timeout_seconds
	original_backend = settings.messaging_backend
	settings.messaging_op_timeout_seconds = 2.0
	container.reset_messaging()
	try:
		yield
	finally:
		settings.messaging_op_timeout_seconds = original_timeout
		settings.messaging_backend = original_backend
		container.reset_messaging()


@pytest.fixture
def profiles():
	return InMemoryProfileDirectory(
		{
			"u1": MemberProfile(user_id="u1", username="ana", photo_url="https://cdn.example/u1.png"),
			"u2": MemberProfile(user_id="u2", username="ben"),
		}
	)


@pytest.fixture
def repository():
	return InMemoryMessagingRepository()


@pytest.fixture
def service(repository, profiles):
	return MessagingService(repository, profiles)


@pytest.fixture
def eventually():
	"""Poll an (optionally async) predicate until it holds, letting pump tasks run."""

	async def _wait(predicate, timeout: float = 1.0):
		loop = asyncio.get_running_loop()
		deadline = loop.time() + timeout
		while True:
			result = predicate()
			if asyncio.iscoroutine(result):
				result = await result
			if result:
				return
			if loop.time() > deadline:
				raise AssertionError("condition not met before timeout")
			await asyncio.sleep(0.005)

	return _wait
