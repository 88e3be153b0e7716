"""Domain-level exceptions for direct messaging."""

from __future__ import annotations


class MessagingError(Exception):
	"""Base class for messaging errors."""

	reason: str = "unknown"

	def __init__(self, reason: str | None = None) -> None:
		super().__init__(reason or self.reason)
		if reason:
			self.reason = reason


class MessagingValidationError(MessagingError, ValueError):
	"""Rejected before any I/O happens."""

	reason = "invalid"


class EmptyMessageError(MessagingValidationError):
	reason = "empty_body"


class SelfThreadError(MessagingValidationError):
	reason = "self_thread"


class InvalidParticipantError(MessagingValidationError):
	reason = "invalid_participant"


class ThreadNotFoundError(MessagingError):
	reason = "thread_not_found"

	def __init__(self, thread_id: str) -> None:
		super().__init__()
		self.thread_id = thread_id

	def __str__(self) -> str:
		return f"{self.reason}:{self.thread_id}"


class MessagingTransportError(MessagingError):
	"""Backend or network failure, including operation timeouts."""

	reason = "transport"


class SendFailedError(MessagingTransportError):
	"""Raised to the UI once a failed send has restored the draft."""

	reason = "send_failed"

	def __init__(self, draft: str, cause_reason: str | None = None) -> None:
		super().__init__()
		self.draft = draft
		self.cause_reason = cause_reason


class SubscriptionError(MessagingError):
	reason = "subscription_failed"


class AccountBannedError(MessagingError):
	reason = "banned"

	def __init__(self, ban_reason: str | None = None) -> None:
		super().__init__("banned")
		self.ban_reason = ban_reason
