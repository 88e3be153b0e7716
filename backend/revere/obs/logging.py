"""Structured logging helpers for the messaging core."""

from __future__ import annotations

import json
import logging
import random
from contextvars import ContextVar, Token
from datetime import datetime, timezone
from typing import Any, Dict, Mapping, Optional

from revere.settings import settings

_THREAD_ID: ContextVar[Optional[str]] = ContextVar("obs_thread_id", default=None)
_USER_ID: ContextVar[Optional[str]] = ContextVar("obs_user_id", default=None)

_LOGGER_NAME = "revere"

# Message content never reaches the log stream.
_SENSITIVE_KEYWORDS = (
	"token",
	"secret",
	"password",
	"email",
	"body",
	"text",
	"preview",
	"draft",
)

_MAX_STRING_LENGTH = 256
_MAX_COLLECTION_ITEMS = 10
_MAX_DEPTH = 4

_RESERVED_ATTRS = frozenset(
	{
		"args",
		"msg",
		"levelname",
		"levelno",
		"pathname",
		"filename",
		"module",
		"exc_info",
		"exc_text",
		"stack_info",
		"lineno",
		"funcName",
		"created",
		"msecs",
		"relativeCreated",
		"thread",
		"threadName",
		"process",
		"processName",
		"taskName",
		"message",
		"name",
	}
)


def bind_context(*, thread_id: Optional[str] = None, user_id: Optional[str] = None) -> Dict[str, Token]:
	"""Bind conversation fields for the current task and return reset tokens."""
	tokens: Dict[str, Token] = {}
	if thread_id is not None:
		tokens["thread_id"] = _THREAD_ID.set(thread_id)
	if user_id is not None:
		tokens["user_id"] = _USER_ID.set(user_id)
	return tokens


def reset_context(tokens: Dict[str, Token]) -> None:
	for key, token in tokens.items():
		if key == "thread_id":
			_THREAD_ID.reset(token)
		elif key == "user_id":
			_USER_ID.reset(token)


def _is_sensitive(key: str) -> bool:
	lowered = key.lower()
	return any(keyword in lowered for keyword in _SENSITIVE_KEYWORDS)


def _scrub(value: Any, key: str = "", depth: int = 0) -> Any:
	"""Make an ``extra`` value JSON-safe: redact by key, clip strings and collections.

	Domain objects (threads, messages) collapse to their id so a stray
	``extra={"last": msg}`` cannot leak the body.
	"""
	if key and _is_sensitive(key):
		return "[redacted]"
	if value is None or isinstance(value, (bool, int, float)):
		return value
	if isinstance(value, str):
		return value[:_MAX_STRING_LENGTH] + "…" if len(value) > _MAX_STRING_LENGTH else value
	if depth >= _MAX_DEPTH:
		return "…"
	if isinstance(value, Mapping):
		items = list(value.items())
		scrubbed = {str(k): _scrub(v, str(k), depth + 1) for k, v in items[:_MAX_COLLECTION_ITEMS]}
		if len(items) > _MAX_COLLECTION_ITEMS:
			scrubbed["…"] = f"+{len(items) - _MAX_COLLECTION_ITEMS} keys"
		return scrubbed
	if isinstance(value, (list, tuple, set, frozenset)):
		items = list(value)
		scrubbed_items = [_scrub(item, "", depth + 1) for item in items[:_MAX_COLLECTION_ITEMS]]
		if len(items) > _MAX_COLLECTION_ITEMS:
			scrubbed_items.append("…")
		return scrubbed_items
	object_id = getattr(value, "id", None)
	if isinstance(object_id, str):
		return f"<{type(value).__name__} {object_id}>"
	return str(value)


class JSONLogFormatter(logging.Formatter):
	"""Emit logs as JSON objects with structured fields."""

	def format(self, record: logging.LogRecord) -> str:  # noqa: A003 (match logging api)
		timestamp = datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat()
		payload: Dict[str, object] = {
			"ts": timestamp,
			"level": record.levelname.lower(),
			"msg": record.getMessage(),
			"logger": record.name,
			"service": settings.service_name,
			"env": settings.environment,
			"commit": settings.git_commit,
		}
		thread_id = _THREAD_ID.get()
		if thread_id:
			payload["thread_id"] = thread_id
		user_id = _USER_ID.get()
		if user_id:
			payload["user_id"] = user_id
		if record.exc_info:
			payload["exc_info"] = self.formatException(record.exc_info)
		for key, value in record.__dict__.items():
			if key in _RESERVED_ATTRS or key.startswith("_"):
				continue
			payload[key] = _scrub(value, key)
		return json.dumps(payload, separators=(",", ":"))


class InfoSamplingFilter(logging.Filter):
	"""Randomly sample info-level logs, keep everything else."""

	def filter(self, record: logging.LogRecord) -> bool:  # noqa: A003
		if record.levelno != logging.INFO:
			return True
		if settings.is_dev():
			return True
		rate = max(0.0, min(1.0, settings.obs_log_sampling_rate_info))
		if rate >= 1.0:
			return True
		return random.random() < rate


def configure_logging() -> logging.Logger:
	"""Configure root logger with JSON formatting and sampling."""
	root = logging.getLogger()
	root.handlers.clear()
	handler = logging.StreamHandler()
	handler.setFormatter(JSONLogFormatter())
	handler.addFilter(InfoSamplingFilter())
	root.addHandler(handler)
	root.setLevel(settings.obs_log_level)
	return logging.getLogger(_LOGGER_NAME)
