from __future__ import annotations

import httpx

from mailcheck.core.config import Settings


def build_api_client(
    settings: Settings, *, transport: httpx.BaseTransport | None = None
) -> httpx.Client:
    return httpx.Client(
        base_url=settings.API_BASE_URL,
        timeout=settings.API_TIMEOUT_SECONDS,
        transport=transport,
        headers={
            "Content-Type": "application/json",
            "Accept": "application/json",
            "User-Agent": settings.API_USER_AGENT,
            "X-Client-Version": settings.VERSION,
            "X-API-Key": settings.API_KEY,
        },
    )
