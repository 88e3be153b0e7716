"""Pydantic payloads emitted to the UI layer."""

from __future__ import annotations

from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from revere.settings import settings

from . import read_state
from .models import Message, Thread


class MessageView(BaseModel):
	id: str
	thread_id: str
	sender_id: str
	recipient_id: str
	body: str
	created_at: datetime
	client_created_at: int
	mine: bool = False

	@classmethod
	def from_model(cls, message: Message, *, self_id: str | None = None) -> "MessageView":
		return cls(
			id=message.id,
			thread_id=message.thread_id,
			sender_id=message.sender_id,
			recipient_id=message.recipient_id,
			body=message.body,
			created_at=message.created_at,
			client_created_at=message.client_created_at,
			mine=self_id is not None and message.sender_id == self_id,
		)


class ThreadView(BaseModel):
	id: str
	members: List[str]
	member_display_names: Dict[str, str] = Field(default_factory=dict)
	member_avatars: Dict[str, str] = Field(default_factory=dict)
	last_message_preview: str = ""
	unread_count: Dict[str, int] = Field(default_factory=dict)
	updated_at: Optional[datetime] = None

	@classmethod
	def from_model(cls, thread: Thread) -> "ThreadView":
		return cls(
			id=thread.id,
			members=list(thread.members),
			member_display_names=dict(thread.member_display_names),
			member_avatars=dict(thread.member_avatars),
			last_message_preview=thread.last_message_preview,
			unread_count=dict(thread.unread_count),
			updated_at=thread.updated_at,
		)


class InboxEntry(BaseModel):
	thread_id: str
	other_user_id: str
	other_display_name: str
	other_avatar: str = ""
	preview: str
	unread: int = Field(default=0, ge=0)
	badge: str = ""
	updated_at: Optional[datetime] = None

	@classmethod
	def from_model(cls, thread: Thread, *, self_id: str) -> "InboxEntry":
		other = thread.other_member(self_id)
		unread = thread.unread_for(self_id)
		return cls(
			thread_id=thread.id,
			other_user_id=other,
			other_display_name=thread.member_display_names.get(other) or settings.default_peer_display_name,
			other_avatar=thread.member_avatars.get(other, ""),
			preview=thread.last_message_preview or settings.inbox_empty_preview,
			unread=unread,
			badge=read_state.format_badge(unread),
			updated_at=thread.updated_at,
		)


class MessagesChanged(BaseModel):
	thread_id: str
	messages: List[MessageView]
	delivery_label: Optional[str] = None


class ThreadChanged(BaseModel):
	thread: ThreadView
	last_outgoing_seen: bool


class ThreadsChanged(BaseModel):
	threads: List[InboxEntry]
	unread_badge: int = Field(default=0, ge=0)
