"""Backend selection for the messaging service."""

from __future__ import annotations

from typing import Optional

from revere import obs
from revere.infra.redis import RedisProxy, redis_client
from revere.settings import Settings, settings as default_settings

from .profiles import InMemoryProfileDirectory, ProfileLookup, RedisProfileDirectory
from .redis_repo import RedisMessagingRepository
from .repo import InMemoryMessagingRepository
from .service import MessagingService

_service: Optional[MessagingService] = None


def build_messaging(
	config: Settings | None = None,
	*,
	client: RedisProxy | None = None,
	profiles: ProfileLookup | None = None,
) -> MessagingService:
	cfg = config or default_settings
	if cfg.messaging_backend == "redis":
		proxy = client or redis_client
		repository = RedisMessagingRepository(proxy, prefix=cfg.messaging_key_prefix)
		lookup = profiles or RedisProfileDirectory(proxy, prefix=cfg.messaging_key_prefix)
		return MessagingService(repository, lookup)
	return MessagingService(InMemoryMessagingRepository(), profiles or InMemoryProfileDirectory())


def get_messaging() -> MessagingService:
	global _service
	if _service is None:
		obs.init()
		_service = build_messaging()
	return _service


def reset_messaging() -> None:
	global _service
	_service = None
