"""Messaging façade driven by conversation and inbox screens."""

from __future__ import annotations

import inspect
import logging
from contextlib import contextmanager
from enum import Enum
from typing import Any, Awaitable, Callable, Iterable, Iterator, List, Optional, Set, Union

from revere.obs import logging as obs_logging
from revere.obs import metrics as obs_metrics

from . import read_state
from .exceptions import AccountBannedError, MessagingError, SendFailedError, SubscriptionError
from .identity import ThreadKey
from .live import Subscription
from .log import MessageLog
from .models import Message, Session, Thread
from .profiles import ProfileLookup
from .repo import MessagingRepository
from .schemas import InboxEntry, MessagesChanged, MessageView, ThreadChanged, ThreadsChanged, ThreadView
from .threads import ThreadStore

logger = logging.getLogger(__name__)

Listener = Callable[[Any], Union[None, Awaitable[None]]]


async def _emit(listener: Optional[Listener], event: Any) -> None:
	if listener is None:
		return
	result = listener(event)
	if inspect.isawaitable(result):
		await result


class ConversationState(str, Enum):
	IDLE = "idle"
	LOADING = "loading"
	READY = "ready"


class Conversation:
	"""State machine behind one conversation screen: idle -> loading -> ready.

	``sending`` runs in parallel with ``ready`` and guards against duplicate
	sends from rapid taps. The thread and its log outlive the screen, so a
	closed conversation can be opened again.
	"""

	def __init__(
		self,
		session: Session,
		other_user_id: str,
		*,
		threads: ThreadStore,
		log: MessageLog,
		other_display_name: Optional[str] = None,
		on_messages: Optional[Listener] = None,
		on_thread: Optional[Listener] = None,
		on_error: Optional[Callable[[SubscriptionError], None]] = None,
	) -> None:
		self.session = session
		self.key = ThreadKey.from_participants(session.user_id, other_user_id)
		self.other_user_id = self.key.other(session.user_id)
		self.other_display_name = other_display_name
		self._threads = threads
		self._log = log
		self._on_messages = on_messages
		self._on_thread = on_thread
		self._on_error = on_error

		self.state = ConversationState.IDLE
		self.draft = ""
		self.messages: List[Message] = []
		self.thread: Optional[Thread] = None
		self.selection: Set[str] = set()
		self.selecting = False
		self._sending = False
		self._epoch = 0
		self._message_sub: Optional[Subscription] = None
		self._thread_sub: Optional[Subscription] = None

	@property
	def thread_id(self) -> str:
		return self.key.thread_id

	@property
	def sending(self) -> bool:
		return self._sending

	@property
	def last_outgoing_seen(self) -> bool:
		if self.thread is None:
			return False
		return read_state.is_last_outgoing_message_seen(self.thread, self.session.user_id)

	@property
	def delivery_label(self) -> Optional[str]:
		return read_state.delivery_label(self.thread, self.messages, self.session.user_id)

	async def open(self) -> Optional[Thread]:
		if self.state is not ConversationState.IDLE:
			return self.thread
		self.state = ConversationState.LOADING
		epoch = self._epoch
		with self._log_context():
			try:
				await self._guard_not_banned()
				self.thread = await self._threads.ensure_thread(
					self.session.user_id, self.other_user_id, self._name_hints()
				)
				await self._threads.mark_read(self.thread_id, self.session.user_id)
				if epoch != self._epoch:
					return self.thread
				# registered before start() so a close() during the first load cancels it
				message_sub = self._message_sub = self._log.watch(
					self.thread_id, self._handle_messages, on_error=self._handle_error
				)
				await message_sub.start()
				if epoch != self._epoch:
					return self.thread
				thread_sub = self._thread_sub = self._threads.watch(
					self.thread_id, self._handle_thread, on_error=self._handle_error
				)
				await thread_sub.start()
				if epoch != self._epoch:
					return self.thread
			except BaseException:
				if epoch == self._epoch:
					self._cancel_subscriptions()
					self.state = ConversationState.IDLE
				raise
		self.state = ConversationState.READY
		logger.info("conversation opened", extra={"thread_id": self.thread_id})
		return self.thread

	async def send(self, text: Optional[str] = None) -> Optional[Message]:
		"""Send ``text`` (or the current draft); blank text and in-flight sends are no-ops."""
		raw = self.draft if text is None else text
		body = (raw or "").strip()
		if not body or self._sending:
			return None
		self._sending = True
		self.draft = ""
		with self._log_context():
			try:
				await self._guard_not_banned()
				await self._threads.ensure_thread(self.session.user_id, self.other_user_id, self._name_hints())
				return await self._log.append(self.thread_id, self.session.user_id, self.other_user_id, body)
			except AccountBannedError:
				self.draft = body
				raise
			except MessagingError as exc:
				self.draft = body
				obs_metrics.inc_chat_send_failure(exc.reason)
				logger.warning("send failed", extra={"error": str(exc)})
				raise SendFailedError(body, exc.reason) from exc
			finally:
				self._sending = False

	async def mark_read(self) -> bool:
		with self._log_context():
			return await self._threads.mark_read(self.thread_id, self.session.user_id)

	async def on_screen_focus_regained(self) -> bool:
		if self.state is not ConversationState.READY:
			return False
		return await self.mark_read()

	async def delete_many(self, message_ids: Iterable[str]) -> int:
		with self._log_context():
			return await self._log.delete_many(self.thread_id, message_ids)

	def begin_selection(self) -> None:
		self.selecting = True

	def toggle_selection(self, message_id: str) -> bool:
		if not self.selecting:
			return False
		if message_id in self.selection:
			self.selection.discard(message_id)
			return False
		self.selection.add(message_id)
		return True

	def clear_selection(self) -> None:
		self.selection.clear()
		self.selecting = False

	async def delete_selected(self) -> int:
		if not self.selection:
			return 0
		# selection survives a failed delete so the user can retry
		removed = await self.delete_many(sorted(self.selection))
		self.clear_selection()
		return removed

	def close(self) -> None:
		self._epoch += 1
		self._cancel_subscriptions()
		self.state = ConversationState.IDLE

	async def _handle_messages(self, messages: List[Message]) -> None:
		self.messages = list(messages)
		if self.selection:
			present = {message.id for message in self.messages}
			self.selection &= present
		event = MessagesChanged(
			thread_id=self.thread_id,
			messages=[MessageView.from_model(m, self_id=self.session.user_id) for m in self.messages],
			delivery_label=self.delivery_label,
		)
		await _emit(self._on_messages, event)

	async def _handle_thread(self, thread: Optional[Thread]) -> None:
		if thread is None:
			return
		self.thread = thread
		event = ThreadChanged(thread=ThreadView.from_model(thread), last_outgoing_seen=self.last_outgoing_seen)
		await _emit(self._on_thread, event)

	def _handle_error(self, error: SubscriptionError) -> None:
		if self._on_error is not None:
			self._on_error(error)

	def _cancel_subscriptions(self) -> None:
		for subscription in (self._message_sub, self._thread_sub):
			if subscription is not None:
				subscription.cancel()
		self._message_sub = None
		self._thread_sub = None

	def _name_hints(self) -> dict[str, str]:
		return {self.other_user_id: self.other_display_name} if self.other_display_name else {}

	async def _guard_not_banned(self) -> None:
		profile = await self._threads.profile(self.session.user_id)
		if profile is not None and profile.is_banned:
			raise AccountBannedError(profile.ban_reason)

	@contextmanager
	def _log_context(self) -> Iterator[None]:
		tokens = obs_logging.bind_context(thread_id=self.thread_id, user_id=self.session.user_id)
		try:
			yield
		finally:
			obs_logging.reset_context(tokens)


class Inbox:
	"""Live list of the session user's threads, newest activity first."""

	def __init__(
		self,
		session: Session,
		*,
		threads: ThreadStore,
		on_change: Optional[Listener] = None,
		on_error: Optional[Callable[[SubscriptionError], None]] = None,
	) -> None:
		self.session = session
		self._threads = threads
		self._on_change = on_change
		self._on_error = on_error
		self.threads: List[Thread] = []
		self.entries: List[InboxEntry] = []
		self.unread_badge = 0
		self.loading = False
		self._subscription: Optional[Subscription] = None

	async def open(self) -> None:
		if self._subscription is not None and self._subscription.active:
			return
		subscription = self._subscription = self._threads.watch_inbox(
			self.session.user_id, self._handle, on_error=self._handle_error
		)
		self.loading = True
		try:
			await subscription.start()
		finally:
			self.loading = False

	def close(self) -> None:
		if self._subscription is not None:
			self._subscription.cancel()
			self._subscription = None

	async def _handle(self, threads: List[Thread]) -> None:
		user_id = self.session.user_id
		self.threads = [thread for thread in threads if thread.is_member(user_id)]
		self.entries = [InboxEntry.from_model(thread, self_id=user_id) for thread in self.threads]
		self.unread_badge = read_state.unread_badge_for(user_id, self.threads)
		await _emit(self._on_change, ThreadsChanged(threads=self.entries, unread_badge=self.unread_badge))

	def _handle_error(self, error: SubscriptionError) -> None:
		self.loading = False
		logger.warning("inbox subscription failed", extra={"user_id": self.session.user_id, "error": str(error)})
		if self._on_error is not None:
			self._on_error(error)


class MessagingService:
	"""Wires the thread store and message log over one repository."""

	def __init__(self, repository: MessagingRepository, profiles: ProfileLookup | None = None) -> None:
		self.repository = repository
		self.profiles = profiles
		self.threads = ThreadStore(repository, profiles)
		self.log = MessageLog(repository, self.threads)

	def conversation(self, session: Session, other_user_id: str, **kwargs: Any) -> Conversation:
		return Conversation(session, other_user_id, threads=self.threads, log=self.log, **kwargs)

	def inbox(self, session: Session, **kwargs: Any) -> Inbox:
		return Inbox(session, threads=self.threads, **kwargs)
