"""Profile lookup used for display-name/avatar snapshots and ban checks."""

from __future__ import annotations

from typing import Dict, Optional, Protocol

from revere.infra.redis import RedisProxy, redis_client
from revere.settings import settings

from .models import MemberProfile


class ProfileLookup(Protocol):
	async def get_profile(self, user_id: str) -> Optional[MemberProfile]:
		...


class InMemoryProfileDirectory:
	def __init__(self, profiles: Dict[str, MemberProfile] | None = None) -> None:
		self._profiles: Dict[str, MemberProfile] = dict(profiles or {})

	def put(self, profile: MemberProfile) -> None:
		self._profiles[profile.user_id] = profile

	async def get_profile(self, user_id: str) -> Optional[MemberProfile]:
		return self._profiles.get(user_id)


class RedisProfileDirectory:
	"""Reads the ``user:{uid}`` hash the account service keeps in Redis."""

	def __init__(self, client: RedisProxy | None = None, *, prefix: str | None = None) -> None:
		self._client = client or redis_client
		self._prefix = prefix or settings.messaging_key_prefix

	def _key(self, user_id: str) -> str:
		return f"{self._prefix}:user:{user_id}"

	async def get_profile(self, user_id: str) -> Optional[MemberProfile]:
		raw = await self._client.hgetall(self._key(user_id))
		if not raw:
			return None
		return MemberProfile.from_document(user_id, raw)

	async def put(self, profile: MemberProfile) -> None:
		mapping = {
			"username": profile.username or "",
			"email": profile.email or "",
			"photo_url": profile.photo_url,
			"account_status": profile.account_status,
			"ban_reason": profile.ban_reason or "",
		}
		await self._client.hset(self._key(profile.user_id), mapping=mapping)
