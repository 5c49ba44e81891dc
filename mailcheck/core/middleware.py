from __future__ import annotations

import base64
import json
import logging
import math
import os
import threading
import time
from collections import deque
from contextvars import ContextVar
from dataclasses import dataclass, field

from fastapi import Request
from fastapi.responses import JSONResponse, RedirectResponse
from starlette.responses import Response
from starlette.routing import Match

from mailcheck.core.config import Settings

request_id_ctx: ContextVar[str | None] = ContextVar("request_id", default=None)
logger = logging.getLogger("mailcheck.api")

# Routes that take credentials and hit a mail server on the caller's behalf.
CREDENTIAL_CHECK_PATHS = frozenset({"/api/test-connection"})


@dataclass(frozen=True)
class RateLimitPolicy:
    name: str
    max_requests: int
    window_seconds: int
    message: str


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    limit: int
    remaining: int
    reset_after: int


@dataclass
class RateLimiter:
    """Sliding-window counter per (policy, client) pair, held in process memory."""

    _lock: threading.Lock = field(default_factory=threading.Lock)
    _buckets: dict[tuple[str, str], deque[float]] = field(default_factory=dict)

    def check(self, policy: RateLimitPolicy, key: str, *, now_ts: float) -> RateLimitDecision:
        with self._lock:
            bucket = self._buckets.setdefault((policy.name, key), deque())

            cutoff = now_ts - float(policy.window_seconds)
            while bucket and bucket[0] <= cutoff:
                bucket.popleft()

            allowed = len(bucket) < policy.max_requests
            if allowed:
                bucket.append(now_ts)

            reset_after = (
                math.ceil(bucket[0] + policy.window_seconds - now_ts) if bucket else 0
            )
            return RateLimitDecision(
                allowed=allowed,
                limit=policy.max_requests,
                remaining=max(0, policy.max_requests - len(bucket)),
                reset_after=max(0, reset_after),
            )


def rate_limit_policies(settings: Settings) -> dict[str, RateLimitPolicy]:
    return {
        "auth": RateLimitPolicy(
            name="auth",
            max_requests=settings.RATE_LIMIT_AUTH_REQUESTS,
            window_seconds=settings.RATE_LIMIT_AUTH_WINDOW_SECONDS,
            message="Too many authentication attempts, please try again later.",
        ),
        "email": RateLimitPolicy(
            name="email",
            max_requests=settings.RATE_LIMIT_REQUESTS_PER_MINUTE,
            window_seconds=60,
            message="Too many email requests, please try again later.",
        ),
    }


def policy_for_path(
    path: str, *, policies: dict[str, RateLimitPolicy]
) -> RateLimitPolicy | None:
    if path in CREDENTIAL_CHECK_PATHS:
        policy = policies["auth"]
    elif path.startswith("/api/"):
        policy = policies["email"]
    else:
        return None
    # A non-positive limit switches the policy off.
    return policy if policy.max_requests > 0 else None


def new_request_id(*, nbytes: int = 18) -> str:
    raw = os.urandom(nbytes)
    return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


def build_request_id(request: Request, *, header_name: str) -> str:
    incoming = (request.headers.get(header_name) or "").strip()
    if incoming:
        return incoming[:128]
    return new_request_id()


def is_production(settings: Settings) -> bool:
    return settings.APP_ENV.strip().lower() in {"prod", "production"}


def https_redirect(request: Request, *, settings: Settings) -> RedirectResponse | None:
    if not is_production(settings):
        return None
    # One proxy hop is trusted to report the original scheme.
    scheme = (request.headers.get("x-forwarded-proto") or request.url.scheme).split(",")[0]
    if scheme.strip().lower() == "https":
        return None
    return RedirectResponse(str(request.url.replace(scheme="https")), status_code=308)


def apply_security_headers(response: Response, *, settings: Settings) -> None:
    response.headers.setdefault("X-Content-Type-Options", "nosniff")
    response.headers.setdefault("Referrer-Policy", "same-origin")
    response.headers.setdefault("Cross-Origin-Resource-Policy", "same-site")
    response.headers.setdefault("Content-Security-Policy", settings.CONTENT_SECURITY_POLICY)
    if is_production(settings):
        response.headers.setdefault(
            "Strict-Transport-Security", "max-age=15552000; includeSubDomains"
        )
    # Responses carry mailbox content.
    response.headers["Cache-Control"] = "no-cache, no-store, must-revalidate"
    response.headers["Pragma"] = "no-cache"
    response.headers["Expires"] = "0"


def apply_rate_limit_headers(response: Response, decision: RateLimitDecision) -> None:
    response.headers["RateLimit-Limit"] = str(decision.limit)
    response.headers["RateLimit-Remaining"] = str(decision.remaining)
    response.headers["RateLimit-Reset"] = str(decision.reset_after)
    if not decision.allowed:
        response.headers["Retry-After"] = str(decision.reset_after)


def route_template(request: Request) -> str | None:
    route = request.scope.get("route")
    if route is None:
        # Requests stopped before routing still get a bounded label.
        for candidate in request.app.router.routes:
            match, _ = candidate.matches(request.scope)
            if match is Match.FULL:
                route = candidate
                break
    return getattr(route, "path", None)


def rate_limit_key(request: Request) -> str:
    forwarded_for = (request.headers.get("x-forwarded-for") or "").strip()
    if forwarded_for:
        ip = forwarded_for.split(",", 1)[0].strip()
    else:
        ip = request.client.host if request.client else "unknown"
    return ip


def rate_limit_response(policy: RateLimitPolicy) -> JSONResponse:
    return JSONResponse(status_code=429, content={"success": False, "error": policy.message})


def log_request_completion(
    *,
    request_id: str,
    method: str,
    path: str,
    status_code: int,
    duration_ms: int,
    rate_limited: bool,
) -> None:
    logger.info(
        json.dumps(
            {
                "event": "http.request.completed",
                "request_id": request_id,
                "method": method,
                "path": path,
                "status_code": status_code,
                "duration_ms": duration_ms,
                "rate_limited": rate_limited,
            },
            separators=(",", ":"),
            sort_keys=True,
        )
    )


def now_ts() -> float:
    return time.time()
