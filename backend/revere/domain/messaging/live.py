"""Live query subscriptions.

A subscription owns one feed listener and one pump task. Every change
notification on its topic reloads a fresh snapshot through the loader and hands
it to the callback, one load at a time. Cancelling is synchronous: once
``cancel()`` returns, the callback is never invoked again.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Awaitable, Callable, Generic, Optional, TypeVar, Union

from revere.obs import metrics as obs_metrics

from .exceptions import SubscriptionError
from .feed import ChangeFeed, FeedListener

T = TypeVar("T")

Loader = Callable[[], Awaitable[T]]
ChangeCallback = Callable[[T], Union[None, Awaitable[None]]]
ErrorCallback = Callable[[SubscriptionError], None]

logger = logging.getLogger(__name__)


class Subscription(Generic[T]):
	def __init__(
		self,
		kind: str,
		feed: ChangeFeed,
		topic: str,
		loader: Loader[T],
		on_change: ChangeCallback[T],
		*,
		on_error: Optional[ErrorCallback] = None,
	) -> None:
		self.kind = kind
		self.topic = topic
		self._feed = feed
		self._loader = loader
		self._on_change = on_change
		self._on_error = on_error
		self._listener: Optional[FeedListener] = None
		self._task: Optional[asyncio.Task] = None
		self._closing: Optional[asyncio.Future] = None
		self._cancelled = False
		self._failed = False
		self._counted = False
		self.deliveries = 0

	@property
	def active(self) -> bool:
		return not self._cancelled and not self._failed

	async def start(self) -> "Subscription[T]":
		"""Register the listener, deliver the initial snapshot, then follow changes."""
		if self._cancelled or self._task is not None:
			return self
		# listen before the first load so no change slips between the two
		self._listener = await self._feed.open(self.topic)
		if self._cancelled:
			await self._listener.aclose()
			return self
		obs_metrics.subscription_started(self.kind)
		self._counted = True
		if await self._refresh():
			self._task = asyncio.create_task(self._pump(), name=f"subscription:{self.topic}")
		else:
			await self._release()
		return self

	def cancel(self) -> None:
		if self._cancelled:
			return
		self._cancelled = True
		if self._task is not None and not self._task.done():
			self._task.cancel()
		# a pump cancelled before its first step never reaches its finally block
		if self._listener is not None:
			self._closing = asyncio.ensure_future(self._release())
		self._stop_counting()

	async def _pump(self) -> None:
		assert self._listener is not None
		try:
			while not self._cancelled:
				await self._listener.wait()
				if self._cancelled or not await self._refresh():
					break
		finally:
			await self._release()

	async def _refresh(self) -> bool:
		try:
			snapshot = await self._loader()
		except asyncio.CancelledError:
			raise
		except Exception as exc:
			self._fail(exc)
			return False
		if self._cancelled:
			return False
		try:
			result = self._on_change(snapshot)
			if inspect.isawaitable(result):
				await result
		except asyncio.CancelledError:
			raise
		except Exception:
			logger.exception("subscription callback failed", extra={"topic": self.topic, "kind": self.kind})
		self.deliveries += 1
		return True

	def _fail(self, exc: Exception) -> None:
		self._failed = True
		obs_metrics.inc_subscription_error(self.kind)
		logger.warning(
			"subscription stopped",
			extra={"topic": self.topic, "kind": self.kind, "error": repr(exc)},
		)
		self._stop_counting()
		if self._on_error is not None and not self._cancelled:
			error = SubscriptionError(getattr(exc, "reason", None) or "snapshot_failed")
			error.__cause__ = exc
			self._on_error(error)

	async def _release(self) -> None:
		listener, self._listener = self._listener, None
		if listener is not None:
			try:
				await listener.aclose()
			except Exception:
				logger.debug("feed listener close failed", exc_info=True, extra={"topic": self.topic})

	def _stop_counting(self) -> None:
		if self._counted:
			self._counted = False
			obs_metrics.subscription_stopped(self.kind)
