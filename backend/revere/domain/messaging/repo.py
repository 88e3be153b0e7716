"""Persistence contract for threads and messages, with an in-process backend."""

from __future__ import annotations

import asyncio
import copy
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Protocol

import ulid

from .exceptions import ThreadNotFoundError
from .feed import ChangeFeed, InMemoryChangeFeed, inbox_topic, messages_topic, thread_topic
from .models import Message, Thread, order_messages


class MessagingRepository(Protocol):
	"""Document persistence with live-query notifications.

	Implementations publish to ``feed`` after every mutation that changes a
	thread document, an inbox query or a message list.
	"""

	feed: ChangeFeed

	async def get_thread(self, thread_id: str) -> Optional[Thread]:
		...

	async def create_thread(self, thread: Thread) -> tuple[Thread, bool]:
		"""Create when absent. Never overwrites an existing thread's fields."""
		...

	async def refresh_member(self, thread_id: str, user_id: str, display_name: str, avatar: str) -> Thread:
		...

	async def apply_send(
		self,
		thread_id: str,
		sender_id: str,
		recipient_id: str,
		preview: str,
		updated_at: datetime,
	) -> Thread:
		"""Preview + timestamp, sender counter to 0, recipient counter atomically +1."""
		...

	async def reset_unread(self, thread_id: str, user_id: str) -> Thread:
		...

	async def list_threads(self, user_id: str) -> List[Thread]:
		"""Threads with ``user_id`` as a member, most recently updated first."""
		...

	async def insert_message(
		self,
		thread_id: str,
		sender_id: str,
		recipient_id: str,
		body: str,
		*,
		created_at: datetime,
		client_created_at: int,
	) -> Message:
		...

	async def list_messages(self, thread_id: str) -> List[Message]:
		...

	async def delete_messages(self, thread_id: str, message_ids: Iterable[str]) -> int:
		...


def _updated_sort_key(thread: Thread) -> float:
	return thread.updated_at.timestamp() if thread.updated_at else 0.0


class InMemoryMessagingRepository:
	"""Dict-backed store used for local runs and tests."""

	def __init__(self, feed: ChangeFeed | None = None) -> None:
		self.feed: ChangeFeed = feed or InMemoryChangeFeed()
		self._lock = asyncio.Lock()
		self._threads: Dict[str, dict] = {}
		self._messages: Dict[str, Dict[str, dict]] = {}
		self._seq: Dict[str, int] = {}

	async def get_thread(self, thread_id: str) -> Optional[Thread]:
		async with self._lock:
			document = self._threads.get(thread_id)
			return Thread.from_document(thread_id, document) if document else None

	async def create_thread(self, thread: Thread) -> tuple[Thread, bool]:
		async with self._lock:
			existing = self._threads.get(thread.id)
			if existing is not None:
				return Thread.from_document(thread.id, existing), False
			document = thread.to_document()
			self._threads[thread.id] = document
			stored = Thread.from_document(thread.id, document)
		await self.feed.publish(thread_topic(thread.id), *(inbox_topic(m) for m in thread.members))
		return stored, True

	async def refresh_member(self, thread_id: str, user_id: str, display_name: str, avatar: str) -> Thread:
		async with self._lock:
			document = self._require(thread_id)
			names = document.setdefault("member_display_names", {})
			avatars = document.setdefault("member_avatars", {})
			changed = names.get(user_id) != display_name or avatars.get(user_id) != avatar
			names[user_id] = display_name
			avatars[user_id] = avatar
			stored = Thread.from_document(thread_id, document)
		if changed:
			await self._publish_thread(stored)
		return stored

	async def apply_send(
		self,
		thread_id: str,
		sender_id: str,
		recipient_id: str,
		preview: str,
		updated_at: datetime,
	) -> Thread:
		async with self._lock:
			document = self._require(thread_id)
			unread = document.setdefault("unread_count", {})
			document["last_message_preview"] = preview
			document["updated_at"] = updated_at.isoformat()
			unread[sender_id] = 0
			unread[recipient_id] = int(unread.get(recipient_id, 0)) + 1
			stored = Thread.from_document(thread_id, document)
		await self._publish_thread(stored)
		return stored

	async def reset_unread(self, thread_id: str, user_id: str) -> Thread:
		async with self._lock:
			document = self._require(thread_id)
			unread = document.setdefault("unread_count", {})
			changed = unread.get(user_id, 0) != 0
			unread[user_id] = 0
			stored = Thread.from_document(thread_id, document)
		if changed:
			await self._publish_thread(stored)
		return stored

	async def list_threads(self, user_id: str) -> List[Thread]:
		async with self._lock:
			threads = [
				Thread.from_document(thread_id, document)
				for thread_id, document in self._threads.items()
				if user_id in document.get("members", ())
			]
		threads.sort(key=_updated_sort_key, reverse=True)
		return threads

	async def insert_message(
		self,
		thread_id: str,
		sender_id: str,
		recipient_id: str,
		body: str,
		*,
		created_at: datetime,
		client_created_at: int,
	) -> Message:
		async with self._lock:
			seq = self._seq.get(thread_id, 0) + 1
			self._seq[thread_id] = seq
			message = Message(
				id=str(ulid.new()),
				thread_id=thread_id,
				sender_id=sender_id,
				recipient_id=recipient_id,
				body=body,
				created_at=created_at,
				client_created_at=client_created_at,
				seq=seq,
			)
			self._messages.setdefault(thread_id, {})[message.id] = message.to_document()
		await self.feed.publish(messages_topic(thread_id))
		return message

	async def list_messages(self, thread_id: str) -> List[Message]:
		async with self._lock:
			documents = copy.deepcopy(self._messages.get(thread_id, {}))
		return order_messages(
			Message.from_document(thread_id, message_id, document) for message_id, document in documents.items()
		)

	async def delete_messages(self, thread_id: str, message_ids: Iterable[str]) -> int:
		async with self._lock:
			messages = self._messages.get(thread_id, {})
			removed = 0
			for message_id in dict.fromkeys(message_ids):
				if messages.pop(message_id, None) is not None:
					removed += 1
		if removed:
			await self.feed.publish(messages_topic(thread_id))
		return removed

	def _require(self, thread_id: str) -> dict:
		document = self._threads.get(thread_id)
		if document is None:
			raise ThreadNotFoundError(thread_id)
		return document

	async def _publish_thread(self, thread: Thread) -> None:
		await self.feed.publish(thread_topic(thread.id), *(inbox_topic(m) for m in thread.members))


__all__ = ["InMemoryMessagingRepository", "MessagingRepository"]
