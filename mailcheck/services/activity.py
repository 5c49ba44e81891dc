from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import Any, Protocol

import httpx

from mailcheck.core.config import Settings
from mailcheck.core.http import build_api_client
from mailcheck.core.metrics import observe_activity_delivery

logger = logging.getLogger("mailcheck.activity")

# Keys that must never leave the process, whatever a caller puts in a payload.
_REDACTED_KEYS = frozenset({"password", "pass", "secret", "token"})


class ReportActivity(Protocol):
    def __call__(self, action: str, data: dict[str, Any]) -> None: ...


class ExternalApiError(RuntimeError):
    pass


def _scrub(data: dict[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in data.items() if k.lower() not in _REDACTED_KEYS}


class ActivityReporter:
    def __init__(
        self, settings: Settings, *, transport: httpx.BaseTransport | None = None
    ) -> None:
        self.settings = settings
        self._transport = transport

    def log_activity(self, action: str, data: dict[str, Any]) -> None:
        """Best-effort delivery of one activity event; failures are logged, never raised."""
        if not self.settings.LOG_TO_API:
            return
        if action not in self.settings.log_events:
            logger.debug("Activity %s is not in LOG_EVENTS, skipping", action)
            observe_activity_delivery(outcome="filtered")
            return

        payload = {
            "action": action,
            "data": {**_scrub(data), "timestamp": datetime.now(UTC).isoformat()},
        }
        try:
            with build_api_client(self.settings, transport=self._transport) as client:
                res = client.post(self.settings.API_LOG_ACTIVITY_PATH, json=payload)
                res.raise_for_status()
        except httpx.HTTPError as e:
            observe_activity_delivery(outcome="error")
            logger.warning("Activity log delivery failed for %s: %s", action, e)
            return
        observe_activity_delivery(outcome="ok")

    def call_custom_api(self, payload: dict[str, Any]) -> Any:
        try:
            with build_api_client(self.settings, transport=self._transport) as client:
                res = client.post(self.settings.API_CUSTOM_ENDPOINT_PATH, json=_scrub(payload))
                res.raise_for_status()
                return res.json()
        except (httpx.HTTPError, ValueError) as e:
            # Upstream detail stays in the server log.
            logger.error("Custom API call failed: %s", e)
            raise ExternalApiError("External API call failed") from e
