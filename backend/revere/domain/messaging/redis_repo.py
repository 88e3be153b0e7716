"""Redis-backed messaging repository and pub/sub change feed.

Layout (all keys under ``settings.messaging_key_prefix``):

- ``thread:{id}``            hash; ``members`` JSON, ``name:{uid}``, ``avatar:{uid}``,
                             ``last_message_preview``, ``updated_at``, ``unread:{uid}``
- ``inbox:{uid}``            zset of thread ids scored by updated_at epoch
- ``thread:{id}:seq``        insertion counter
- ``thread:{id}:messages``   zset of message ids scored by seq
- ``message:{id}:{mid}``     hash with the message document
- ``feed:{topic}``           pub/sub channel, payload is just ``"changed"``
"""

from __future__ import annotations

import json
from datetime import datetime
from typing import Dict, Iterable, List, Optional

import ulid

from revere.infra.redis import RedisProxy, redis_client
from revere.settings import settings

from .exceptions import ThreadNotFoundError
from .feed import inbox_topic, messages_topic, thread_topic
from .models import Message, Thread, order_messages

_NAME_PREFIX = "name:"
_AVATAR_PREFIX = "avatar:"
_UNREAD_PREFIX = "unread:"
_FEED_PAYLOAD = "changed"


class _PubSubListener:
	def __init__(self, pubsub) -> None:
		self._pubsub = pubsub

	async def wait(self) -> None:
		while True:
			message = await self._pubsub.get_message(ignore_subscribe_messages=True, timeout=1.0)
			if message is not None:
				return

	async def aclose(self) -> None:
		try:
			await self._pubsub.unsubscribe()
		finally:
			await self._pubsub.aclose()


class RedisChangeFeed:
	def __init__(self, client: RedisProxy | None = None, *, prefix: str | None = None) -> None:
		self._client = client or redis_client
		self._prefix = prefix or settings.messaging_key_prefix

	def channel(self, topic: str) -> str:
		return f"{self._prefix}:feed:{topic}"

	async def open(self, topic: str) -> _PubSubListener:
		pubsub = self._client.pubsub()
		await pubsub.subscribe(self.channel(topic))
		return _PubSubListener(pubsub)

	async def publish(self, *topics: str) -> None:
		await self._client.publish_many((self.channel(topic) for topic in topics), _FEED_PAYLOAD)


def _thread_to_hash(thread: Thread) -> Dict[str, object]:
	mapping: Dict[str, object] = {
		"members": json.dumps(list(thread.members)),
		"last_message_preview": thread.last_message_preview,
		"updated_at": thread.updated_at.isoformat() if thread.updated_at else "",
	}
	for member in thread.members:
		mapping[f"{_NAME_PREFIX}{member}"] = thread.member_display_names.get(member, "")
		mapping[f"{_AVATAR_PREFIX}{member}"] = thread.member_avatars.get(member, "")
		mapping[f"{_UNREAD_PREFIX}{member}"] = int(thread.unread_count.get(member, 0))
	return mapping


def _hash_to_thread(thread_id: str, raw: Dict[str, str]) -> Thread:
	names: Dict[str, str] = {}
	avatars: Dict[str, str] = {}
	unread: Dict[str, str] = {}
	for field, value in raw.items():
		if field.startswith(_NAME_PREFIX):
			names[field[len(_NAME_PREFIX):]] = value
		elif field.startswith(_AVATAR_PREFIX):
			avatars[field[len(_AVATAR_PREFIX):]] = value
		elif field.startswith(_UNREAD_PREFIX):
			unread[field[len(_UNREAD_PREFIX):]] = value
	document = {
		"members": json.loads(raw.get("members") or "[]"),
		"member_display_names": names,
		"member_avatars": avatars,
		"last_message_preview": raw.get("last_message_preview", ""),
		"unread_count": unread,
		"updated_at": raw.get("updated_at") or None,
	}
	return Thread.from_document(thread_id, document)


def _score(moment: Optional[datetime]) -> float:
	return moment.timestamp() if moment else 0.0


class RedisMessagingRepository:
	def __init__(
		self,
		client: RedisProxy | None = None,
		*,
		prefix: str | None = None,
		feed: RedisChangeFeed | None = None,
	) -> None:
		self._client = client or redis_client
		self._prefix = prefix or settings.messaging_key_prefix
		self.feed = feed or RedisChangeFeed(self._client, prefix=self._prefix)

	def _thread_key(self, thread_id: str) -> str:
		return f"{self._prefix}:thread:{thread_id}"

	def _inbox_key(self, user_id: str) -> str:
		return f"{self._prefix}:inbox:{user_id}"

	def _seq_key(self, thread_id: str) -> str:
		return f"{self._prefix}:thread:{thread_id}:seq"

	def _messages_key(self, thread_id: str) -> str:
		return f"{self._prefix}:thread:{thread_id}:messages"

	def _message_key(self, thread_id: str, message_id: str) -> str:
		return f"{self._prefix}:message:{thread_id}:{message_id}"

	async def get_thread(self, thread_id: str) -> Optional[Thread]:
		raw = await self._client.hgetall(self._thread_key(thread_id))
		if not raw or "members" not in raw:
			return None
		return _hash_to_thread(thread_id, raw)

	async def create_thread(self, thread: Thread) -> tuple[Thread, bool]:
		key = self._thread_key(thread.id)
		mapping = _thread_to_hash(thread)
		written = await self._client.hsetnx_many(key, mapping)
		created = bool(written and written[0])
		if created:
			score = _score(thread.updated_at)
			async with self._client.pipeline(transaction=True) as pipe:
				for member in thread.members:
					pipe.zadd(self._inbox_key(member), {thread.id: score}, nx=True)
				await pipe.execute()
		stored = await self.get_thread(thread.id)
		if stored is None:
			raise ThreadNotFoundError(thread.id)
		if created:
			await self._publish_thread(stored)
		return stored, created

	async def refresh_member(self, thread_id: str, user_id: str, display_name: str, avatar: str) -> Thread:
		await self._require(thread_id)
		await self._client.hset(
			self._thread_key(thread_id),
			mapping={f"{_NAME_PREFIX}{user_id}": display_name, f"{_AVATAR_PREFIX}{user_id}": avatar},
		)
		stored = await self._load(thread_id)
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
		await self._require(thread_id)
		key = self._thread_key(thread_id)
		score = _score(updated_at)
		async with self._client.pipeline(transaction=True) as pipe:
			pipe.hset(
				key,
				mapping={
					"last_message_preview": preview,
					"updated_at": updated_at.isoformat(),
					f"{_UNREAD_PREFIX}{sender_id}": 0,
				},
			)
			# field-level increment, never read-then-write
			pipe.hincrby(key, f"{_UNREAD_PREFIX}{recipient_id}", 1)
			pipe.zadd(self._inbox_key(sender_id), {thread_id: score})
			pipe.zadd(self._inbox_key(recipient_id), {thread_id: score})
			await pipe.execute()
		stored = await self._load(thread_id)
		await self._publish_thread(stored)
		return stored

	async def reset_unread(self, thread_id: str, user_id: str) -> Thread:
		await self._require(thread_id)
		key = self._thread_key(thread_id)
		field = f"{_UNREAD_PREFIX}{user_id}"
		async with self._client.pipeline(transaction=True) as pipe:
			pipe.hget(key, field)
			pipe.hset(key, field, 0)
			previous, _ = await pipe.execute()
		stored = await self._load(thread_id)
		if int(previous or 0) != 0:
			await self._publish_thread(stored)
		return stored

	async def list_threads(self, user_id: str) -> List[Thread]:
		thread_ids = await self._client.zrevrange(self._inbox_key(user_id), 0, -1)
		if not thread_ids:
			return []
		async with self._client.pipeline(transaction=False) as pipe:
			for thread_id in thread_ids:
				pipe.hgetall(self._thread_key(thread_id))
			rows = await pipe.execute()
		return [
			_hash_to_thread(thread_id, raw)
			for thread_id, raw in zip(thread_ids, rows)
			if raw and "members" in raw
		]

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
		seq = int(await self._client.incr(self._seq_key(thread_id)))
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
		document = message.to_document()
		async with self._client.pipeline(transaction=True) as pipe:
			pipe.hset(self._message_key(thread_id, message.id), mapping={k: str(v) for k, v in document.items()})
			pipe.zadd(self._messages_key(thread_id), {message.id: seq})
			await pipe.execute()
		await self.feed.publish(messages_topic(thread_id))
		return message

	async def list_messages(self, thread_id: str) -> List[Message]:
		message_ids = await self._client.zrange(self._messages_key(thread_id), 0, -1)
		if not message_ids:
			return []
		async with self._client.pipeline(transaction=False) as pipe:
			for message_id in message_ids:
				pipe.hgetall(self._message_key(thread_id, message_id))
			rows = await pipe.execute()
		return order_messages(
			Message.from_document(thread_id, message_id, raw)
			for message_id, raw in zip(message_ids, rows)
			if raw
		)

	async def delete_messages(self, thread_id: str, message_ids: Iterable[str]) -> int:
		targets = list(dict.fromkeys(message_ids))
		if not targets:
			return 0
		async with self._client.pipeline(transaction=True) as pipe:
			for message_id in targets:
				pipe.zrem(self._messages_key(thread_id), message_id)
				pipe.delete(self._message_key(thread_id, message_id))
			results = await pipe.execute()
		removed = sum(int(result or 0) for result in results[0::2])
		if removed:
			await self.feed.publish(messages_topic(thread_id))
		return removed

	async def _require(self, thread_id: str) -> None:
		if not await self._client.hexists(self._thread_key(thread_id), "members"):
			raise ThreadNotFoundError(thread_id)

	async def _load(self, thread_id: str) -> Thread:
		thread = await self.get_thread(thread_id)
		if thread is None:
			raise ThreadNotFoundError(thread_id)
		return thread

	async def _publish_thread(self, thread: Thread) -> None:
		await self.feed.publish(thread_topic(thread.id), *(inbox_topic(m) for m in thread.members))
