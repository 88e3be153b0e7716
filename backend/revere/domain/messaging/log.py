"""Per-thread append-only message log."""

from __future__ import annotations

import logging
from typing import Iterable, List, Optional

from revere.obs import metrics as obs_metrics

from .exceptions import EmptyMessageError, InvalidParticipantError
from .feed import messages_topic
from .identity import ThreadKey
from .live import ChangeCallback, ErrorCallback, Subscription
from .models import Message, client_timestamp_ms, utcnow
from .ops import backend_call
from .repo import MessagingRepository
from .threads import ThreadStore

logger = logging.getLogger(__name__)


class MessageLog:
	def __init__(self, repository: MessagingRepository, threads: ThreadStore) -> None:
		self._repo = repository
		self._threads = threads

	async def append(
		self,
		thread_id: str,
		sender_id: str,
		recipient_id: str,
		body: str,
		*,
		client_created_at: Optional[int] = None,
	) -> Message:
		text = (body or "").strip()
		if not text:
			raise EmptyMessageError()
		if ThreadKey.from_participants(sender_id, recipient_id).thread_id != thread_id:
			raise InvalidParticipantError("not_a_member")

		created_at = utcnow()
		message = await backend_call(
			"insert_message",
			self._repo.insert_message(
				thread_id,
				sender_id,
				recipient_id,
				text,
				created_at=created_at,
				client_created_at=client_created_at if client_created_at is not None else client_timestamp_ms(created_at),
			),
		)
		obs_metrics.inc_chat_send()
		# message first, metadata second: a stale preview is fine, a lost message is not
		await self._threads.touch_on_send(thread_id, sender_id, recipient_id, text)
		return message

	async def list_messages(self, thread_id: str) -> List[Message]:
		return await backend_call("list_messages", self._repo.list_messages(thread_id))

	def watch(
		self,
		thread_id: str,
		on_change: ChangeCallback[List[Message]],
		*,
		on_error: ErrorCallback | None = None,
	) -> Subscription[List[Message]]:
		return Subscription(
			"messages",
			self._repo.feed,
			messages_topic(thread_id),
			lambda: self.list_messages(thread_id),
			on_change,
			on_error=on_error,
		)

	async def subscribe(
		self,
		thread_id: str,
		on_change: ChangeCallback[List[Message]],
		*,
		on_error: ErrorCallback | None = None,
	) -> Subscription[List[Message]]:
		return await self.watch(thread_id, on_change, on_error=on_error).start()

	async def delete_many(self, thread_id: str, message_ids: Iterable[str]) -> int:
		targets = [str(message_id) for message_id in message_ids if message_id]
		if not targets:
			return 0
		removed = await backend_call("delete_messages", self._repo.delete_messages(thread_id, targets))
		obs_metrics.inc_messages_deleted(removed)
		logger.info("messages deleted", extra={"thread_id": thread_id, "requested": len(targets), "removed": removed})
		return removed
