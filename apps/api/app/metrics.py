from __future__ import annotations

import re

from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest
from starlette.requests import Request


http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "path", "status"],
)

http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "path"],
)

quotes_created_total = Counter(
    "quotes_created_total",
    "Total quotes created",
)

quote_transitions_total = Counter(
    "quote_transitions_total",
    "Total quote status transitions",
    ["from_status", "to_status"],
)

quote_number_conflicts_total = Counter(
    "quote_number_conflicts_total",
    "Quote number unique-constraint collisions that triggered a retry",
)

quotes_expired_total = Counter(
    "quotes_expired_total",
    "Total quotes flipped to expired by the batch job",
)

quote_notification_failures_total = Counter(
    "quote_notification_failures_total",
    "Quote notifications that failed to dispatch",
    ["event"],
)

quote_reminders_sent_total = Counter(
    "quote_reminders_sent_total",
    "Quote expiry reminders sent",
    ["reminder_type"],
)

quote_job_duration_seconds = Histogram(
    "quote_job_duration_seconds",
    "Quote batch job duration in seconds",
    ["job_name"],
)


_UUID_RE = re.compile(
    r"\b[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[1-5][0-9a-fA-F]{3}-[89abAB][0-9a-fA-F]{3}-[0-9a-fA-F]{12}\b"
)
_INT_RE = re.compile(r"/\d+\b")
_PATH_PARAM_RE = re.compile(r"\{[^{}]+\}")


def _normalize_route_template(path: str) -> str:
    return _PATH_PARAM_RE.sub("{id}", path)


def _sanitize_path(path: str) -> str:
    without_uuids = _UUID_RE.sub("{id}", path)
    return _INT_RE.sub("/{id}", without_uuids)


def resolve_http_path_label(request: Request) -> str:
    route = request.scope.get("route")
    if route is not None:
        path_format = getattr(route, "path_format", None)
        if isinstance(path_format, str) and path_format:
            return _normalize_route_template(path_format)
        route_path = getattr(route, "path", None)
        if isinstance(route_path, str) and route_path:
            return _normalize_route_template(route_path)
    return _sanitize_path(request.url.path)


def observe_http_request(method: str, path: str, status: int, duration: float) -> None:
    status_str = str(status)
    http_requests_total.labels(method=method, path=path, status=status_str).inc()
    http_request_duration_seconds.labels(method=method, path=path).observe(duration)


def observe_quote_created() -> None:
    quotes_created_total.inc()


def observe_quote_transition(from_status: str, to_status: str) -> None:
    quote_transitions_total.labels(from_status=from_status, to_status=to_status).inc()


def observe_quote_number_conflict() -> None:
    quote_number_conflicts_total.inc()


def observe_quotes_expired(count: int) -> None:
    if count > 0:
        quotes_expired_total.inc(count)


def observe_quote_notification_failure(event: str) -> None:
    quote_notification_failures_total.labels(event=event).inc()


def observe_quote_reminder_sent(reminder_type: str) -> None:
    quote_reminders_sent_total.labels(reminder_type=reminder_type).inc()


def observe_quote_job(job_name: str, duration: float) -> None:
    quote_job_duration_seconds.labels(job_name=job_name).observe(duration)


def generate_metrics_payload() -> bytes:
    return generate_latest()


def metrics_content_type() -> str:
    return CONTENT_TYPE_LATEST
