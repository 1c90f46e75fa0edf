"""Central registry for Prometheus metrics used across the backend."""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram

REQUEST_COUNTER = Counter(
	"tribelife_http_requests_total",
	"Total HTTP requests processed",
	["route", "method", "status"],
)

REQUEST_LATENCY = Histogram(
	"tribelife_http_request_duration_seconds",
	"HTTP request latency in seconds",
	["route", "method"],
	buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0),
)

SOCKET_CLIENTS = Gauge(
	"tribelife_socketio_clients",
	"Active Socket.IO clients per namespace",
	["namespace"],
)

SOCKET_EVENTS = Counter(
	"tribelife_socketio_events_total",
	"Socket.IO events per namespace; direction is in (handled) or out (emitted)",
	["namespace", "event", "direction"],
)

SOCKET_REJECTS = Counter(
	"tribelife_socketio_connect_rejects_total",
	"Socket.IO connection attempts refused",
	["reason"],
)

CHAT_SEND = Counter(
	"tribelife_chat_messages_total",
	"Chat messages persisted",
	["target"],
)

CHAT_DROPPED = Counter(
	"tribelife_chat_dropped_total",
	"Inbound chat messages silently dropped",
	["reason"],
)

MENTIONS_RESOLVED = Counter(
	"tribelife_chat_mentions_resolved_total",
	"Mention tokens resolved to a user",
)

NOTIFICATIONS = Counter(
	"tribelife_notifications_total",
	"Notifications persisted by kind",
	["kind"],
)

NOTIFICATION_LIVE = Counter(
	"tribelife_notifications_live_total",
	"Live notification emits",
	["result"],
)

PUSH_SENDS = Counter(
	"tribelife_push_sends_total",
	"Push transport submissions",
	["result"],
)

MATCH_COMPARISONS = Counter(
	"tribelife_beacon_comparisons_total",
	"Beacon pair comparisons",
	["result"],
)

MATCH_CREATED = Counter(
	"tribelife_beacon_matches_total",
	"Beacon match pairs recorded",
)

BEACONS_CREATED = Counter(
	"tribelife_beacons_created_total",
	"Beacon submissions by outcome",
	["result"],
)

BACKGROUND_RUNS = Counter(
	"tribelife_jobs_runs_total",
	"Background job executions",
	["name", "result"],
)

BACKGROUND_DURATION = Histogram(
	"tribelife_jobs_duration_seconds",
	"Background job duration",
	["name"],
	buckets=(0.1, 0.5, 1.0, 5.0, 15.0, 60.0, 300.0, 900.0),
)


def observe_request(route: str, method: str, status: int, elapsed_seconds: float) -> None:
	REQUEST_COUNTER.labels(route=route, method=method, status=str(status)).inc()
	REQUEST_LATENCY.labels(route=route, method=method).observe(elapsed_seconds)


def socket_connected(namespace: str) -> None:
	SOCKET_CLIENTS.labels(namespace=namespace).inc()


def socket_disconnected(namespace: str) -> None:
	SOCKET_CLIENTS.labels(namespace=namespace).dec()


def socket_event(namespace: str, event: str, *, direction: str = "in") -> None:
	SOCKET_EVENTS.labels(namespace=namespace, event=event, direction=direction).inc()


def socket_rejected(reason: str) -> None:
	SOCKET_REJECTS.labels(reason=reason).inc()


def inc_chat_send(target: str) -> None:
	CHAT_SEND.labels(target=target).inc()


def inc_chat_dropped(reason: str) -> None:
	CHAT_DROPPED.labels(reason=reason).inc()


def inc_mentions_resolved(count: int) -> None:
	if count > 0:
		MENTIONS_RESOLVED.inc(count)


def inc_notification(kind: str) -> None:
	NOTIFICATIONS.labels(kind=kind).inc()


def inc_notification_live(result: str) -> None:
	NOTIFICATION_LIVE.labels(result=result).inc()


def inc_push(result: str) -> None:
	PUSH_SENDS.labels(result=result).inc()


def inc_match_comparison(result: str) -> None:
	MATCH_COMPARISONS.labels(result=result).inc()


def inc_match_created() -> None:
	MATCH_CREATED.inc()


def inc_beacon_created(result: str) -> None:
	BEACONS_CREATED.labels(result=result).inc()


def record_job_run(name: str, *, result: str, duration_seconds: float | None = None) -> None:
	BACKGROUND_RUNS.labels(name=name, result=result).inc()
	if duration_seconds is not None:
		BACKGROUND_DURATION.labels(name=name).observe(duration_seconds)
