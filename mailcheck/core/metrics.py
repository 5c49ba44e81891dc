from __future__ import annotations

from prometheus_client import Counter, Histogram

_HTTP_REQUESTS_TOTAL = Counter(
    "mailcheck_http_requests_total",
    "Total HTTP requests handled by the API.",
    labelnames=("method", "route", "status_code"),
)
_HTTP_REQUEST_DURATION_SECONDS = Histogram(
    "mailcheck_http_request_duration_seconds",
    "HTTP request duration in seconds.",
    labelnames=("method", "route"),
)
_HTTP_RATE_LIMITED_TOTAL = Counter(
    "mailcheck_http_rate_limited_total",
    "HTTP requests rejected by a rate limit policy.",
    labelnames=("policy", "route"),
)
_MAIL_OPERATIONS_TOTAL = Counter(
    "mailcheck_mail_operations_total",
    "Protocol adapter calls by protocol, operation and outcome.",
    labelnames=("protocol", "operation", "outcome"),
)
_MAIL_OPERATION_DURATION_SECONDS = Histogram(
    "mailcheck_mail_operation_duration_seconds",
    "Wall time of one protocol adapter call, connect to release.",
    labelnames=("protocol", "operation"),
    buckets=(0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0),
)
_ACTIVITY_DELIVERIES_TOTAL = Counter(
    "mailcheck_activity_deliveries_total",
    "Activity events sent to the external API, by outcome.",
    labelnames=("outcome",),
)


def observe_http_request(
    *,
    method: str,
    route: str | None,
    status_code: int,
    duration_ms: int,
    rate_limit_policy: str | None,
) -> None:
    safe_route = route or "unmatched"
    safe_method = method or "UNKNOWN"

    _HTTP_REQUESTS_TOTAL.labels(
        method=safe_method,
        route=safe_route,
        status_code=str(status_code),
    ).inc()
    _HTTP_REQUEST_DURATION_SECONDS.labels(method=safe_method, route=safe_route).observe(
        max(0.0, duration_ms / 1000.0)
    )
    if rate_limit_policy:
        _HTTP_RATE_LIMITED_TOTAL.labels(policy=rate_limit_policy, route=safe_route).inc()


def observe_mail_operation(
    *, protocol: str, operation: str, ok: bool, duration_seconds: float
) -> None:
    _MAIL_OPERATIONS_TOTAL.labels(
        protocol=protocol or "unknown",
        operation=operation,
        outcome="ok" if ok else "error",
    ).inc()
    _MAIL_OPERATION_DURATION_SECONDS.labels(
        protocol=protocol or "unknown", operation=operation
    ).observe(max(0.0, duration_seconds))


def observe_activity_delivery(*, outcome: str) -> None:
    _ACTIVITY_DELIVERIES_TOTAL.labels(outcome=outcome).inc()
