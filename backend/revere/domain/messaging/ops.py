"""Backend call wrapper: timeout, latency metric, transport error mapping."""

from __future__ import annotations

import asyncio
import time
from typing import Awaitable, Optional, TypeVar

from revere.obs import metrics as obs_metrics
from revere.settings import settings

from .exceptions import MessagingError, MessagingTransportError

T = TypeVar("T")


async def backend_call(op: str, awaitable: Awaitable[T], *, timeout: Optional[float] = None) -> T:
	limit = timeout if timeout is not None else settings.messaging_op_timeout_seconds
	started = time.perf_counter()
	try:
		return await asyncio.wait_for(awaitable, timeout=limit)
	except MessagingError:
		raise
	except asyncio.TimeoutError as exc:
		raise MessagingTransportError(f"{op}:timeout") from exc
	except Exception as exc:
		raise MessagingTransportError(f"{op}:{type(exc).__name__}") from exc
	finally:
		obs_metrics.observe_backend_op(op, time.perf_counter() - started)
