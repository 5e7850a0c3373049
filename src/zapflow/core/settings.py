"""Centralized zapflow configuration.

All fields can be set via ``ZAPFLOW_*`` environment variables or a ``.env``
file. Nested groups use ``__`` as delimiter, e.g.
``ZAPFLOW_RETRY__MAX_RETRIES=3`` or ``ZAPFLOW_RATE_LIMIT__QUOTA_LIMIT=500``.

Fields
──────
database_path        : SQLite file holding workflows, runs and the outbox
redis_url            : Row-hash store backend (None → in-memory store)
rowhash_namespace    : Prefix of ``<ns>:trigger:<id>:rowhash`` keys
rowhash_ttl_seconds  : Retention of per-trigger hash state
outbox_batch_size    : Pending entries claimed per drain
outbox_lease_seconds : Age after which an unfinished claim may be re-claimed
cron_secret          : Shared secret for the /process, /poll and cron routes
retry / rate_limit / breaker / smtp : resilience and action settings
"""

from __future__ import annotations

from functools import lru_cache

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class RetrySettings(BaseModel):
    """Exponential backoff for retryable API failures (seconds)."""

    max_retries: int = Field(default=5, ge=0)
    base_delay: float = Field(default=1.0, ge=0)
    max_delay: float = Field(default=30.0, ge=0)
    multiplier: float = Field(default=2.0, ge=1.0)


class RateLimitSettings(BaseModel):
    """Per-client sliding-window limits and quota."""

    max_requests_per_second: int = Field(default=10, ge=1)
    max_requests_per_minute: int = Field(default=100, ge=1)
    max_requests_per_hour: int = Field(default=1000, ge=1)
    quota_limit: int = Field(default=250, ge=1)


class BreakerSettings(BaseModel):
    """Circuit breaker thresholds."""

    failure_threshold: int = Field(default=5, ge=1)
    recovery_timeout: float = Field(default=60.0, ge=0)


class SmtpSettings(BaseModel):
    """SMTP relay used by the Email action."""

    host: str = "smtp.gmail.com"
    port: int = 587
    user: str | None = None
    password: str | None = None
    use_tls: bool = True
    from_address: str = "zapflow@example.com"


class ZapflowSettings(BaseSettings):
    """zapflow runtime settings."""

    model_config = SettingsConfigDict(
        env_prefix="ZAPFLOW_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        env_nested_delimiter="__",
    )

    # ── Storage ──────────────────────────────────────────────────
    database_path: str = "zapflow.db"
    redis_url: str | None = None
    rowhash_namespace: str = "sheets"
    rowhash_ttl_seconds: int = Field(default=60 * 60 * 24 * 30, ge=1)

    # ── Outbox ───────────────────────────────────────────────────
    outbox_batch_size: int = Field(default=50, ge=1)
    outbox_lease_seconds: float = Field(default=300.0, gt=0)

    # ── Ingestion ────────────────────────────────────────────────
    cron_secret: str | None = None

    # ── Logging ──────────────────────────────────────────────────
    log_level: str = "INFO"
    log_json: bool | None = None

    # ── Resilience ───────────────────────────────────────────────
    retry: RetrySettings = Field(default_factory=RetrySettings)
    rate_limit: RateLimitSettings = Field(default_factory=RateLimitSettings)
    breaker: BreakerSettings = Field(default_factory=BreakerSettings)

    # ── Actions ──────────────────────────────────────────────────
    smtp: SmtpSettings = Field(default_factory=SmtpSettings)
    http_timeout: float = Field(default=30.0, gt=0)


@lru_cache(maxsize=1)
def get_settings() -> ZapflowSettings:
    """Return the process-wide settings (cached)."""
    return ZapflowSettings()


__all__ = [
    "BreakerSettings",
    "RateLimitSettings",
    "RetrySettings",
    "SmtpSettings",
    "ZapflowSettings",
    "get_settings",
]
