import json
import logging
from datetime import datetime, timezone

from revere.domain.messaging.models import Message
from revere.obs import logging as obs_logging
from revere.settings import settings


def _record(message: str, **extra) -> logging.LogRecord:
    record = logging.LogRecord("revere.test", logging.INFO, __file__, 1, message, None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_formatter_redacts_message_content():
    formatter = obs_logging.JSONLogFormatter()

    payload = json.loads(
        formatter.format(_record("send failed", body="secret words", draft="hi", preview="x", reason="timeout"))
    )

    assert payload["msg"] == "send failed"
    assert payload["level"] == "info"
    assert payload["service"] == settings.service_name
    assert payload["body"] == "[redacted]"
    assert payload["draft"] == "[redacted]"
    assert payload["preview"] == "[redacted]"
    assert payload["reason"] == "timeout"


def test_formatter_includes_bound_context():
    formatter = obs_logging.JSONLogFormatter()
    tokens = obs_logging.bind_context(thread_id="u1_u2", user_id="u1")
    try:
        payload = json.loads(formatter.format(_record("conversation opened")))
    finally:
        obs_logging.reset_context(tokens)

    assert payload["thread_id"] == "u1_u2"
    assert payload["user_id"] == "u1"
    assert "thread_id" not in json.loads(formatter.format(_record("after reset")))


def test_formatter_collapses_domain_objects():
    message = Message(
        id="m1",
        thread_id="u1_u2",
        sender_id="u1",
        recipient_id="u2",
        body="private",
        created_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
        client_created_at=1,
    )
    payload = json.loads(obs_logging.JSONLogFormatter().format(_record("stored", last=message)))
    assert payload["last"] == "<Message m1>"


def test_formatter_truncates_long_values():
    formatter = obs_logging.JSONLogFormatter()
    payload = json.loads(formatter.format(_record("bulk", ids=[str(i) for i in range(25)], note="x" * 400)))

    assert len(payload["ids"]) == 11
    assert payload["ids"][-1] == "…"
    assert payload["note"].endswith("…")


def test_sampling_filter_keeps_warnings(monkeypatch):
    monkeypatch.setattr(settings, "environment", "production")
    monkeypatch.setattr(settings, "obs_log_sampling_rate_info", 0.0)
    sampler = obs_logging.InfoSamplingFilter()

    assert not sampler.filter(_record("chatty"))
    warning = _record("problem")
    warning.levelno = logging.WARNING
    assert sampler.filter(warning)


def test_sampling_filter_keeps_everything_in_dev(monkeypatch):
    monkeypatch.setattr(settings, "environment", "dev")
    monkeypatch.setattr(settings, "obs_log_sampling_rate_info", 0.0)
    assert obs_logging.InfoSamplingFilter().filter(_record("chatty"))


def test_configure_logging_installs_json_handler():
    root = logging.getLogger()
    saved_handlers, saved_level = list(root.handlers), root.level
    try:
        logger = obs_logging.configure_logging()
        assert logger.name == "revere"
        assert len(root.handlers) == 1
        handler = root.handlers[0]
        assert isinstance(handler.formatter, obs_logging.JSONLogFormatter)
        assert any(isinstance(f, obs_logging.InfoSamplingFilter) for f in handler.filters)
    finally:
        root.handlers[:] = saved_handlers
        root.setLevel(saved_level)
