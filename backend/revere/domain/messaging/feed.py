"""Change notification feed behind live subscriptions."""

from __future__ import annotations

import asyncio
from typing import Dict, Protocol, Set


def thread_topic(thread_id: str) -> str:
	return f"thread:{thread_id}"


def messages_topic(thread_id: str) -> str:
	return f"messages:{thread_id}"


def inbox_topic(user_id: str) -> str:
	return f"inbox:{user_id}"


class FeedListener(Protocol):
	async def wait(self) -> None:
		"""Block until the next change notification for this listener's topic."""
		...

	async def aclose(self) -> None:
		...


class ChangeFeed(Protocol):
	async def open(self, topic: str) -> FeedListener:
		...

	async def publish(self, *topics: str) -> None:
		...


class _QueueListener:
	def __init__(self, feed: "InMemoryChangeFeed", topic: str) -> None:
		self._feed = feed
		self._topic = topic
		self.queue: asyncio.Queue[None] = asyncio.Queue()

	async def wait(self) -> None:
		await self.queue.get()

	async def aclose(self) -> None:
		self._feed._detach(self._topic, self)


class InMemoryChangeFeed:
	"""Process-local fan-out; every open listener gets one notification per publish."""

	def __init__(self) -> None:
		self._listeners: Dict[str, Set[_QueueListener]] = {}

	async def open(self, topic: str) -> _QueueListener:
		listener = _QueueListener(self, topic)
		self._listeners.setdefault(topic, set()).add(listener)
		return listener

	async def publish(self, *topics: str) -> None:
		for topic in dict.fromkeys(topics):
			for listener in list(self._listeners.get(topic, ())):
				listener.queue.put_nowait(None)

	def listener_count(self, topic: str) -> int:
		return len(self._listeners.get(topic, ()))

	def _detach(self, topic: str, listener: _QueueListener) -> None:
		listeners = self._listeners.get(topic)
		if not listeners:
			return
		listeners.discard(listener)
		if not listeners:
			self._listeners.pop(topic, None)
