"""Direct messaging exports."""

from .container import build_messaging, get_messaging
from .exceptions import (
	AccountBannedError,
	EmptyMessageError,
	InvalidParticipantError,
	MessagingError,
	MessagingTransportError,
	SelfThreadError,
	SendFailedError,
	SubscriptionError,
	ThreadNotFoundError,
)
from .identity import ThreadKey, thread_id
from .models import MemberProfile, Message, Session, Thread
from .read_state import delivery_label, format_badge, is_last_outgoing_message_seen, unread_badge_for
from .service import Conversation, ConversationState, Inbox, MessagingService

__all__ = [
	"AccountBannedError",
	"Conversation",
	"ConversationState",
	"EmptyMessageError",
	"Inbox",
	"InvalidParticipantError",
	"MemberProfile",
	"Message",
	"MessagingError",
	"MessagingService",
	"MessagingTransportError",
	"SelfThreadError",
	"SendFailedError",
	"Session",
	"SubscriptionError",
	"Thread",
	"ThreadKey",
	"ThreadNotFoundError",
	"build_messaging",
	"delivery_label",
	"format_badge",
	"get_messaging",
	"is_last_outgoing_message_seen",
	"thread_id",
	"unread_badge_for",
]
