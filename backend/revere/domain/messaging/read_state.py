"""Read/unread signals derived from thread state."""

from __future__ import annotations

from typing import Iterable, Optional, Sequence

from revere.settings import settings

from .models import Message, Thread

SEEN = "Seen"
SENT = "Sent"


def unread_badge_for(user_id: str, threads: Iterable[Thread]) -> int:
	"""Number of threads with unread messages, not the number of messages."""
	return sum(1 for thread in threads if thread.unread_for(user_id) > 0)


def is_last_outgoing_message_seen(thread: Thread, self_id: str) -> bool:
	# Thread-level signal: the peer has cleared their counter, which may have
	# happened before they scrolled to our newest message.
	return thread.unread_for(thread.other_member(self_id)) == 0


def last_outgoing_message(messages: Sequence[Message], self_id: str) -> Optional[Message]:
	for message in reversed(messages):
		if message.sender_id == self_id:
			return message
	return None


def delivery_label(thread: Optional[Thread], messages: Sequence[Message], self_id: str) -> Optional[str]:
	if thread is None or last_outgoing_message(messages, self_id) is None:
		return None
	return SEEN if is_last_outgoing_message_seen(thread, self_id) else SENT


def format_badge(count: int, cap: int | None = None) -> str:
	limit = settings.unread_badge_cap if cap is None else cap
	if count <= 0:
		return ""
	if count > limit:
		return f"{limit}+"
	return str(count)
