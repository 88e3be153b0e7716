"""Redis connection management.

Provides a stable proxy object so imports like `from revere.infra.redis import redis_client`
always reference the same proxy instance. The underlying client can be swapped at
runtime (e.g., to fakeredis in tests) without breaking previously imported references.

Also adds small helpers the messaging backend leans on:
- HSETNX over a whole mapping inside one MULTI block
- PUBLISH that tolerates an empty channel set
"""

from __future__ import annotations

from typing import Iterable, Mapping

import redis.asyncio as redis

from revere.settings import settings


class RedisProxy:
	"""Lightweight proxy that forwards attribute access to an underlying Redis client.

	This lets us swap the real client for a FakeRedis instance in tests while keeping
	the same imported symbol across the codebase.
	"""

	def __init__(self, client: redis.Redis):
		self._client: redis.Redis = client

	def set_client(self, client: redis.Redis) -> None:
		self._client = client

	@property
	def client(self) -> redis.Redis:
		return self._client

	async def hsetnx_many(self, name: str, mapping: Mapping[str, object]) -> list[bool]:
		"""Set each field only when absent; returns which fields were written.

		Existing fields are never overwritten, so concurrent creators can all run this
		without resetting values another writer already changed.
		"""
		if not mapping:
			return []
		async with self._client.pipeline(transaction=True) as pipe:
			for field, value in mapping.items():
				pipe.hsetnx(name, field, value)
			results = await pipe.execute()
		return [bool(item) for item in results]

	async def publish_many(self, channels: Iterable[str], message: str) -> int:
		targets = list(dict.fromkeys(channels))
		if not targets:
			return 0
		async with self._client.pipeline(transaction=False) as pipe:
			for channel in targets:
				pipe.publish(channel, message)
			results = await pipe.execute()
		return sum(int(item or 0) for item in results)

	# Fallback: delegate everything else to the underlying client
	def __getattr__(self, item):
		return getattr(self._client, item)


# Create proxy with the real client by default
_real_client = redis.from_url(settings.redis_url, decode_responses=True)
redis_client: RedisProxy = RedisProxy(_real_client)


def set_redis_client(client: redis.Redis) -> None:
	redis_client.set_client(client)
