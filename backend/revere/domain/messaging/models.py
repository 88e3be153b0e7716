"""Domain models for direct messaging."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from .exceptions import InvalidParticipantError

ACCOUNT_ACTIVE = "active"
ACCOUNT_BANNED = "banned"


def utcnow() -> datetime:
	return datetime.now(timezone.utc)


def client_timestamp_ms(now: datetime | None = None) -> int:
	moment = now or utcnow()
	return int(moment.timestamp() * 1000)


def parse_timestamp(value: Any) -> Optional[datetime]:
	"""Accept datetimes, ISO strings and epoch numbers (seconds or milliseconds)."""
	if value is None or value == "":
		return None
	if isinstance(value, datetime):
		return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
	if isinstance(value, (int, float)):
		seconds = value / 1000 if value > 1e11 else value
		return datetime.fromtimestamp(seconds, tz=timezone.utc)
	try:
		parsed = datetime.fromisoformat(str(value))
	except ValueError:
		return None
	return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def _first(document: Mapping[str, Any], *keys: str, default: Any = None) -> Any:
	for key in keys:
		if key in document and document[key] is not None:
			return document[key]
	return default


def _str_map(raw: Any) -> Dict[str, str]:
	if not isinstance(raw, Mapping):
		return {}
	return {str(key): str(value or "") for key, value in raw.items()}


def _count_map(raw: Any) -> Dict[str, int]:
	if not isinstance(raw, Mapping):
		return {}
	counts: Dict[str, int] = {}
	for key, value in raw.items():
		try:
			counts[str(key)] = max(0, int(value or 0))
		except (TypeError, ValueError):
			counts[str(key)] = 0
	return counts


@dataclass(frozen=True, slots=True)
class Session:
	"""The authenticated participant driving a façade instance."""

	user_id: str
	email: Optional[str] = None


@dataclass(slots=True)
class MemberProfile:
	user_id: str
	username: Optional[str] = None
	email: Optional[str] = None
	photo_url: str = ""
	account_status: str = ACCOUNT_ACTIVE
	ban_reason: Optional[str] = None

	@property
	def is_banned(self) -> bool:
		return self.account_status == ACCOUNT_BANNED

	def display_name(self, fallback: str) -> str:
		if self.username:
			return self.username
		if self.email and "@" in self.email:
			local = self.email.split("@", 1)[0]
			if local:
				return local
		return fallback

	@classmethod
	def from_document(cls, user_id: str, document: Mapping[str, Any]) -> "MemberProfile":
		return cls(
			user_id=user_id,
			username=_first(document, "username") or None,
			email=_first(document, "email") or None,
			photo_url=str(_first(document, "photo_url", "photoURL", default="")),
			account_status=str(_first(document, "account_status", "accountStatus", default=ACCOUNT_ACTIVE)),
			ban_reason=_first(document, "ban_reason", "banReason") or None,
		)


@dataclass(slots=True)
class Thread:
	id: str
	members: Tuple[str, str]
	member_display_names: Dict[str, str] = field(default_factory=dict)
	member_avatars: Dict[str, str] = field(default_factory=dict)
	last_message_preview: str = ""
	unread_count: Dict[str, int] = field(default_factory=dict)
	updated_at: Optional[datetime] = None

	def __post_init__(self) -> None:
		if len(self.members) != 2 or self.members[0] == self.members[1]:
			raise InvalidParticipantError("thread_needs_two_members")

	def is_member(self, user_id: str) -> bool:
		return user_id in self.members

	def other_member(self, user_id: str) -> str:
		if user_id == self.members[0]:
			return self.members[1]
		if user_id == self.members[1]:
			return self.members[0]
		raise InvalidParticipantError("not_a_member")

	def unread_for(self, user_id: str) -> int:
		return self.unread_count.get(user_id, 0)

	def to_document(self) -> dict:
		return {
			"id": self.id,
			"members": list(self.members),
			"member_display_names": dict(self.member_display_names),
			"member_avatars": dict(self.member_avatars),
			"last_message_preview": self.last_message_preview,
			"unread_count": dict(self.unread_count),
			"updated_at": self.updated_at.isoformat() if self.updated_at else None,
		}

	@classmethod
	def from_document(cls, thread_id: str, document: Mapping[str, Any]) -> "Thread":
		"""Build a thread from a stored document, ignoring fields we do not model."""
		members = tuple(str(member) for member in _first(document, "members", default=()))
		return cls(
			id=thread_id,
			members=members,  # type: ignore[arg-type]
			member_display_names=_str_map(_first(document, "member_display_names", "memberUsernames")),
			member_avatars=_str_map(_first(document, "member_avatars", "memberAvatars")),
			last_message_preview=str(_first(document, "last_message_preview", "lastMessage", default="")),
			unread_count=_count_map(_first(document, "unread_count", "unread")),
			updated_at=parse_timestamp(_first(document, "updated_at", "updatedAt")),
		)


@dataclass(frozen=True, slots=True)
class Message:
	id: str
	thread_id: str
	sender_id: str
	recipient_id: str
	body: str
	created_at: datetime
	client_created_at: int
	seq: int = 0

	@property
	def sort_key(self) -> Tuple[int, int]:
		return (self.client_created_at, self.seq)

	def to_document(self) -> dict:
		return {
			"id": self.id,
			"thread_id": self.thread_id,
			"sender_id": self.sender_id,
			"recipient_id": self.recipient_id,
			"body": self.body,
			"created_at": self.created_at.isoformat(),
			"client_created_at": self.client_created_at,
			"seq": self.seq,
		}

	@classmethod
	def from_document(cls, thread_id: str, message_id: str, document: Mapping[str, Any]) -> "Message":
		client_created_at = int(_first(document, "client_created_at", "clientCreatedAt", default=0))
		created_at = parse_timestamp(_first(document, "created_at", "createdAt"))
		return cls(
			id=message_id,
			thread_id=thread_id,
			sender_id=str(_first(document, "sender_id", "from", default="")),
			recipient_id=str(_first(document, "recipient_id", "to", default="")),
			body=str(_first(document, "body", "text", default="")),
			created_at=created_at or parse_timestamp(client_created_at) or utcnow(),
			client_created_at=client_created_at,
			seq=int(_first(document, "seq", default=0)),
		)


def order_messages(messages: Iterable[Message]) -> List[Message]:
	"""Display order: client timestamp ascending, insertion order on ties."""
	return sorted(messages, key=lambda message: message.sort_key)
