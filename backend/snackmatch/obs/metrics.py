"""Central registry for Prometheus metrics used across the backend."""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram, Summary


REQUEST_COUNTER = Counter(
	"snack_http_requests_total",
	"Total HTTP requests processed",
	["route", "method", "status"],
)

REQUEST_LATENCY = Histogram(
	"snack_http_request_duration_seconds",
	"HTTP request latency in seconds",
	["route", "method"],
	buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0),
)

SOCKET_CLIENTS = Gauge(
	"snack_socketio_clients",
	"Active Socket.IO clients per namespace",
	["namespace"],
)

SOCKET_EVENTS = Counter(
	"snack_socketio_events_total",
	"Socket.IO events emitted per namespace",
	["namespace", "event"],
)

RATE_LIMITED_EVENTS = Counter(
	"snack_rate_limited_total",
	"Requests rejected by rate limits",
	["kind"],
)

SNACK_REQUESTS_CREATED = Counter(
	"snack_requests_created_total",
	"Snack requests submitted",
	["activity_type"],
)

SNACK_MATCH_OUTCOMES = Counter(
	"snack_match_outcomes_total",
	"Match attempts by outcome",
	["outcome"],
)

SNACK_MATCH_SCORE = Histogram(
	"snack_match_score",
	"Compatibility score of consummated pairings",
	buckets=(0.0, 0.1, 0.2, 0.3, 0.4, 0.6, 0.8, 1.0, 1.1),
)

SNACK_SESSIONS_ENDED = Counter(
	"snack_sessions_ended_total",
	"Sessions ended by reason",
	["reason"],
)

SNACK_SESSIONS_EXTENDED = Counter(
	"snack_sessions_extended_total",
	"Session extensions applied",
)

SNACK_MESSAGES_SENT = Counter(
	"snack_messages_sent_total",
	"Session chat messages persisted",
)

SNACK_RATINGS_SUBMITTED = Counter(
	"snack_ratings_submitted_total",
	"Session ratings submitted",
)

SNACK_REPUTATION_UPDATES = Counter(
	"snack_reputation_updates_total",
	"Reputation recomputations after mutual ratings",
)

SNACK_REPORTS = Counter(
	"snack_reports_total",
	"User reports filed",
)

SNACK_BLOCKS = Counter(
	"snack_blocks_total",
	"Block operations",
	["result"],
)

SNACK_EXPIRED_SESSIONS = Counter(
	"snack_expired_sessions_total",
	"Sessions ended by the expiry sweep",
)

REDIS_UP = Gauge("snack_redis_up", "Redis availability (1=up,0=down)")
REDIS_LATENCY = Summary("snack_redis_latency_seconds", "Redis ping latency (seconds)")

POSTGRES_UP = Gauge("snack_postgres_up", "Postgres availability (1=up,0=down)")
POSTGRES_LATENCY = Summary("snack_postgres_latency_seconds", "Postgres ping latency (seconds)")

BACKGROUND_RUNS = Counter(
	"snack_jobs_runs_total",
	"Background job executions",
	["name", "result"],
)

BACKGROUND_DURATION = Histogram(
	"snack_jobs_duration_seconds",
	"Background job duration",
	["name"],
	buckets=(0.1, 0.5, 1.0, 2.0, 5.0, 15.0, 30.0, 60.0),
)


def observe_request(route: str, method: str, status: int, elapsed_seconds: float) -> None:
	REQUEST_COUNTER.labels(route=route, method=method, status=str(status)).inc()
	REQUEST_LATENCY.labels(route=route, method=method).observe(elapsed_seconds)


def socket_connected(namespace: str) -> None:
	SOCKET_CLIENTS.labels(namespace=namespace).inc()


def socket_disconnected(namespace: str) -> None:
	SOCKET_CLIENTS.labels(namespace=namespace).dec()


def socket_event(namespace: str, event: str) -> None:
	SOCKET_EVENTS.labels(namespace=namespace, event=event).inc()


def inc_rate_limited(kind: str) -> None:
	RATE_LIMITED_EVENTS.labels(kind=kind).inc()


def inc_snack_request_created(activity_type: str) -> None:
	SNACK_REQUESTS_CREATED.labels(activity_type=activity_type).inc()


def inc_snack_match(outcome: str) -> None:
	SNACK_MATCH_OUTCOMES.labels(outcome=outcome).inc()


def observe_snack_match_score(value: float) -> None:
	SNACK_MATCH_SCORE.observe(value)


def inc_snack_session_ended(reason: str) -> None:
	SNACK_SESSIONS_ENDED.labels(reason=reason).inc()


def inc_snack_session_extended() -> None:
	SNACK_SESSIONS_EXTENDED.inc()


def inc_snack_message() -> None:
	SNACK_MESSAGES_SENT.inc()


def inc_snack_rating() -> None:
	SNACK_RATINGS_SUBMITTED.inc()


def inc_snack_reputation_update(count: int = 1) -> None:
	SNACK_REPUTATION_UPDATES.inc(count)


def inc_snack_report() -> None:
	SNACK_REPORTS.inc()


def inc_snack_block(result: str) -> None:
	SNACK_BLOCKS.labels(result=result).inc()


def inc_snack_expired(count: int) -> None:
	if count > 0:
		SNACK_EXPIRED_SESSIONS.inc(count)


def mark_redis(ok: bool, *, latency_seconds: float | None = None) -> None:
	REDIS_UP.set(1 if ok else 0)
	if latency_seconds is not None:
		REDIS_LATENCY.observe(latency_seconds)


def mark_postgres(ok: bool, *, latency_seconds: float | None = None) -> None:
	POSTGRES_UP.set(1 if ok else 0)
	if latency_seconds is not None:
		POSTGRES_LATENCY.observe(latency_seconds)


def record_job_run(name: str, *, result: str, duration_seconds: float | None = None) -> None:
	BACKGROUND_RUNS.labels(name=name, result=result).inc()
	if duration_seconds is not None:
		BACKGROUND_DURATION.labels(name=name).observe(duration_seconds)
