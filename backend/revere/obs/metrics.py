"""Prometheus metrics for the messaging core."""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram

MESSAGES_SENT = Counter(
	"revere_chat_messages_sent_total",
	"Direct messages persisted",
)

SEND_FAILURES = Counter(
	"revere_chat_send_failures_total",
	"Direct message sends that failed",
	["reason"],
)

READ_MARKS = Counter(
	"revere_chat_read_marks_total",
	"Thread read-marks applied",
	["result"],
)

THREAD_RECOVERIES = Counter(
	"revere_chat_thread_recoveries_total",
	"Thread-not-found races resolved through ensure + retry",
	["operation", "outcome"],
)

MESSAGES_DELETED = Counter(
	"revere_chat_messages_deleted_total",
	"Messages removed by explicit selection",
)

SUBSCRIPTIONS_ACTIVE = Gauge(
	"revere_chat_subscriptions_active",
	"Live subscriptions currently delivering",
	["kind"],
)

SUBSCRIPTION_ERRORS = Counter(
	"revere_chat_subscription_errors_total",
	"Live subscriptions stopped by a snapshot failure",
	["kind"],
)

BACKEND_LATENCY = Histogram(
	"revere_chat_backend_op_duration_seconds",
	"Messaging backend operation latency in seconds",
	["op"],
	buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
)


def inc_chat_send() -> None:
	MESSAGES_SENT.inc()


def inc_chat_send_failure(reason: str) -> None:
	SEND_FAILURES.labels(reason=reason).inc()


def inc_read_mark(result: str) -> None:
	READ_MARKS.labels(result=result).inc()


def inc_thread_recovery(operation: str, outcome: str) -> None:
	THREAD_RECOVERIES.labels(operation=operation, outcome=outcome).inc()


def inc_messages_deleted(count: int) -> None:
	if count > 0:
		MESSAGES_DELETED.inc(count)


def subscription_started(kind: str) -> None:
	SUBSCRIPTIONS_ACTIVE.labels(kind=kind).inc()


def subscription_stopped(kind: str) -> None:
	SUBSCRIPTIONS_ACTIVE.labels(kind=kind).dec()


def inc_subscription_error(kind: str) -> None:
	SUBSCRIPTION_ERRORS.labels(kind=kind).inc()


def observe_backend_op(op: str, seconds: float) -> None:
	BACKEND_LATENCY.labels(op=op).observe(max(0.0, seconds))
