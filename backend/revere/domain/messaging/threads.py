"""Thread metadata: lazy creation, send bookkeeping and read marks."""

from __future__ import annotations

import logging
from typing import Awaitable, Callable, Dict, List, Mapping, Optional, TypeVar

from revere.obs import metrics as obs_metrics
from revere.settings import settings

from .exceptions import MessagingError, ThreadNotFoundError
from .feed import inbox_topic, thread_topic
from .identity import ThreadKey
from .live import ChangeCallback, ErrorCallback, Subscription
from .models import MemberProfile, Thread, utcnow
from .ops import backend_call
from .profiles import ProfileLookup
from .repo import MessagingRepository

T = TypeVar("T")

logger = logging.getLogger(__name__)


class ThreadStore:
	def __init__(self, repository: MessagingRepository, profiles: ProfileLookup | None = None) -> None:
		self._repo = repository
		self._profiles = profiles

	@property
	def repository(self) -> MessagingRepository:
		return self._repo

	async def get_thread(self, thread_id: str) -> Optional[Thread]:
		return await backend_call("get_thread", self._repo.get_thread(thread_id))

	async def list_threads(self, user_id: str) -> List[Thread]:
		return await backend_call("list_threads", self._repo.list_threads(user_id))

	async def ensure_thread(
		self,
		user_id: str,
		other_user_id: str,
		display_name_hints: Mapping[str, str] | None = None,
	) -> Thread:
		"""Create the thread on first contact; otherwise leave counters and preview alone.

		``user_id`` is the caller. Names come from the hints, then the profile, then
		the configured defaults. On an existing thread only the caller's own
		name/avatar snapshot may be refreshed.
		"""
		key = ThreadKey.from_participants(user_id, other_user_id)
		existing = await self.get_thread(key.thread_id)
		if existing is not None:
			return await self._refresh_own_snapshot(existing, user_id)

		hints = dict(display_name_hints or {})
		names: Dict[str, str] = {}
		avatars: Dict[str, str] = {}
		for member in key.participants():
			fallback = settings.default_self_display_name if member == user_id else settings.default_peer_display_name
			profile = await self.profile(member)
			names[member] = hints.get(member) or (profile.display_name(fallback) if profile else fallback)
			avatars[member] = profile.photo_url if profile else ""
		thread = Thread(
			id=key.thread_id,
			members=key.participants(),
			member_display_names=names,
			member_avatars=avatars,
			last_message_preview="",
			unread_count={member: 0 for member in key.participants()},
			updated_at=utcnow(),
		)
		stored, created = await backend_call("create_thread", self._repo.create_thread(thread))
		if created:
			logger.info("thread created", extra={"thread_id": stored.id})
		return stored

	async def touch_on_send(
		self,
		thread_id: str,
		sender_id: str,
		recipient_id: str,
		preview: str,
	) -> Optional[Thread]:
		"""Best effort: a failure here never undoes the message that was just stored."""
		return await self._with_recovery(
			"touch_on_send",
			thread_id,
			sender_id,
			lambda: self._repo.apply_send(thread_id, sender_id, recipient_id, preview, utcnow()),
		)

	async def mark_read(self, thread_id: str, user_id: str) -> bool:
		thread = await self._with_recovery(
			"mark_read",
			thread_id,
			user_id,
			lambda: self._repo.reset_unread(thread_id, user_id),
		)
		obs_metrics.inc_read_mark("ok" if thread is not None else "failed")
		return thread is not None

	def watch(
		self,
		thread_id: str,
		on_change: ChangeCallback[Optional[Thread]],
		*,
		on_error: ErrorCallback | None = None,
	) -> Subscription[Optional[Thread]]:
		"""Unstarted subscription to one thread document; the snapshot is None until it exists."""
		return Subscription(
			"thread",
			self._repo.feed,
			thread_topic(thread_id),
			lambda: self.get_thread(thread_id),
			on_change,
			on_error=on_error,
		)

	async def subscribe(
		self,
		thread_id: str,
		on_change: ChangeCallback[Optional[Thread]],
		*,
		on_error: ErrorCallback | None = None,
	) -> Subscription[Optional[Thread]]:
		return await self.watch(thread_id, on_change, on_error=on_error).start()

	def watch_inbox(
		self,
		user_id: str,
		on_change: ChangeCallback[List[Thread]],
		*,
		on_error: ErrorCallback | None = None,
	) -> Subscription[List[Thread]]:
		return Subscription(
			"inbox",
			self._repo.feed,
			inbox_topic(user_id),
			lambda: self.list_threads(user_id),
			on_change,
			on_error=on_error,
		)

	async def subscribe_inbox(
		self,
		user_id: str,
		on_change: ChangeCallback[List[Thread]],
		*,
		on_error: ErrorCallback | None = None,
	) -> Subscription[List[Thread]]:
		return await self.watch_inbox(user_id, on_change, on_error=on_error).start()

	async def _with_recovery(
		self,
		operation: str,
		thread_id: str,
		caller_id: str,
		call: Callable[[], Awaitable[T]],
	) -> Optional[T]:
		try:
			return await backend_call(operation, call())
		except ThreadNotFoundError:
			logger.info("thread missing, ensuring before retry", extra={"thread_id": thread_id, "operation": operation})
		except MessagingError as exc:
			logger.warning("thread update failed", extra={"thread_id": thread_id, "operation": operation, "error": str(exc)})
			return None

		try:
			key = ThreadKey.parse(thread_id)
			await self.ensure_thread(caller_id, key.other(caller_id))
			result = await backend_call(operation, call())
		except MessagingError as exc:
			obs_metrics.inc_thread_recovery(operation, "gave_up")
			logger.warning(
				"thread update abandoned after retry",
				extra={"thread_id": thread_id, "operation": operation, "error": str(exc)},
			)
			return None
		obs_metrics.inc_thread_recovery(operation, "recovered")
		return result

	async def profile(self, user_id: str) -> Optional[MemberProfile]:
		if self._profiles is None:
			return None
		try:
			return await backend_call("get_profile", self._profiles.get_profile(user_id))
		except MessagingError as exc:
			# a stale or missing snapshot is acceptable
			logger.info("profile lookup failed", extra={"target_user": user_id, "error": str(exc)})
			return None

	async def _refresh_own_snapshot(self, thread: Thread, user_id: str) -> Thread:
		profile = await self.profile(user_id)
		if profile is None:
			return thread
		name = profile.display_name(thread.member_display_names.get(user_id) or settings.default_self_display_name)
		avatar = profile.photo_url or thread.member_avatars.get(user_id, "")
		if thread.member_display_names.get(user_id) == name and thread.member_avatars.get(user_id, "") == avatar:
			return thread
		try:
			return await backend_call("refresh_member", self._repo.refresh_member(thread.id, user_id, name, avatar))
		except MessagingError as exc:
			logger.info("snapshot refresh skipped", extra={"thread_id": thread.id, "error": str(exc)})
			return thread
