from __future__ import annotations

import logging

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from starlette.responses import Response

from mailcheck.core.config import get_settings
from mailcheck.core.metrics import observe_http_request
from mailcheck.core.middleware import (
    RateLimiter,
    apply_rate_limit_headers,
    apply_security_headers,
    build_request_id,
    https_redirect,
    log_request_completion,
    now_ts,
    policy_for_path,
    rate_limit_key,
    rate_limit_policies,
    rate_limit_response,
    request_id_ctx,
    route_template,
)
from mailcheck.routers.external import router as external_router
from mailcheck.routers.health import router as health_router
from mailcheck.routers.mail import router as mail_router
from mailcheck.routers.providers import router as providers_router

logger = logging.getLogger("mailcheck.api")


def create_app() -> FastAPI:
    settings = get_settings()
    logging.getLogger("mailcheck").setLevel(settings.LOG_LEVEL.upper())

    app = FastAPI(title="Mailcheck API", version=settings.VERSION)

    rate_limiter = RateLimiter()
    policies = rate_limit_policies(settings)
    origins = [o.strip() for o in settings.CORS_ORIGINS.split(",") if o.strip()]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def add_security_headers_and_request_context(  # type: ignore[no-untyped-def]
        request, call_next
    ):
        request_id = build_request_id(request, header_name=settings.REQUEST_ID_HEADER)
        token = request_id_ctx.set(request_id)
        start_ts = now_ts()
        method = request.method
        path = request.url.path
        response = None
        decision = None
        blocked_by = None
        status_code = 500

        try:
            response = https_redirect(request, settings=settings)

            policy = policy_for_path(path, policies=policies)
            if response is None and policy is not None:
                decision = rate_limiter.check(policy, rate_limit_key(request), now_ts=now_ts())
                if not decision.allowed:
                    blocked_by = policy.name
                    response = rate_limit_response(policy)

            if response is None:
                response = await call_next(request)

            status_code = response.status_code
            response.headers[settings.REQUEST_ID_HEADER] = request_id
            if decision is not None:
                apply_rate_limit_headers(response, decision)
            apply_security_headers(response, settings=settings)
            return response
        finally:
            duration_ms = int((now_ts() - start_ts) * 1000)
            log_request_completion(
                request_id=request_id,
                method=method,
                path=path,
                status_code=status_code,
                duration_ms=duration_ms,
                rate_limited=blocked_by is not None,
            )
            if settings.ENABLE_PROMETHEUS_METRICS:
                observe_http_request(
                    method=method,
                    route=route_template(request),
                    status_code=status_code,
                    duration_ms=duration_ms,
                    rate_limit_policy=blocked_by,
                )
            request_id_ctx.reset(token)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"success": False, "errors": jsonable_encoder(exc.errors())},
        )

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"success": False, "error": "Internal server error"},
        )

    if settings.ENABLE_PROMETHEUS_METRICS:

        @app.get(settings.PROMETHEUS_METRICS_PATH, include_in_schema=False)
        def metrics() -> Response:
            return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    app.include_router(health_router)
    app.include_router(providers_router)
    app.include_router(mail_router)
    app.include_router(external_router)
    return app


app = create_app()
