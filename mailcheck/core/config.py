from __future__ import annotations

from functools import lru_cache

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    VERSION: str = "1.0.0"
    APP_ENV: str = "dev"  # dev|test|prod
    LOG_LEVEL: str = "INFO"

    CORS_ORIGINS: str = "http://localhost:5000"
    REQUEST_ID_HEADER: str = "x-request-id"
    RATE_LIMIT_REQUESTS_PER_MINUTE: int = 30
    RATE_LIMIT_AUTH_REQUESTS: int = 10
    RATE_LIMIT_AUTH_WINDOW_SECONDS: int = 900
    ENABLE_PROMETHEUS_METRICS: bool = True
    PROMETHEUS_METRICS_PATH: str = "/metrics"
    CONTENT_SECURITY_POLICY: str = (
        "default-src 'self'; "
        "img-src 'self' data:; "
        "style-src 'self' https: 'unsafe-inline'; "
        "script-src 'self' 'unsafe-inline'; "
        "object-src 'none'; "
        "base-uri 'self'"
    )

    # Mail transports. Timeouts are in seconds; none of them may be zero.
    TLS_VERIFY_CERTIFICATES: bool = True
    IMAP_CONNECTION_TIMEOUT: float = 10.0
    IMAP_AUTH_TIMEOUT: float = 5.0
    IMAP_SOCKET_TIMEOUT: float = 30.0
    POP3_CONNECTION_TIMEOUT: float = 10.0
    POP3_AUTH_TIMEOUT: float = 5.0
    POP3_SOCKET_TIMEOUT: float = 30.0
    SMTP_CONNECTION_TIMEOUT: float = 10.0
    SMTP_GREETING_TIMEOUT: float = 5.0
    SMTP_SOCKET_TIMEOUT: float = 30.0

    DEFAULT_FETCH_FOLDER: str = "INBOX"
    DEFAULT_FETCH_COUNT: int = 10
    MAX_FETCH_COUNT: int = 200
    DATE_DISPLAY_FORMAT: str = "%d.%m.%Y, %H:%M:%S"

    # External activity API
    API_BASE_URL: str = "https://your-api-domain.com/api"
    API_KEY: str = ""
    API_TIMEOUT_SECONDS: float = 10.0
    API_LOG_ACTIVITY_PATH: str = "/log/activity"
    API_CUSTOM_ENDPOINT_PATH: str = "/custom/endpoint"
    API_USER_AGENT: str = "EmailClient/1.0"
    LOG_TO_API: bool = True
    LOG_EVENTS: str = (
        "connection_test_success,connection_test_failed,"
        "emails_fetched,emails_fetch_failed,"
        "email_sent_success,email_sent_failed,"
        "emails_marked_read,emails_mark_read_failed,"
        "folders_fetched,folders_fetch_failed,"
        "custom_api_call"
    )

    @field_validator(
        "IMAP_CONNECTION_TIMEOUT",
        "IMAP_AUTH_TIMEOUT",
        "IMAP_SOCKET_TIMEOUT",
        "POP3_CONNECTION_TIMEOUT",
        "POP3_AUTH_TIMEOUT",
        "POP3_SOCKET_TIMEOUT",
        "SMTP_CONNECTION_TIMEOUT",
        "SMTP_GREETING_TIMEOUT",
        "SMTP_SOCKET_TIMEOUT",
        "API_TIMEOUT_SECONDS",
    )
    @classmethod
    def _validate_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("timeouts must be positive")
        return v

    @field_validator("DEFAULT_FETCH_COUNT", "MAX_FETCH_COUNT")
    @classmethod
    def _validate_fetch_count(cls, v: int) -> int:
        if v < 0:
            raise ValueError("fetch counts must not be negative")
        return v

    @property
    def log_events(self) -> frozenset[str]:
        return frozenset(e.strip() for e in self.LOG_EVENTS.split(",") if e.strip())


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
