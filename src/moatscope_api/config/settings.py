# src/moatscope_api/config/settings.py
# Copyright (c) MoatScope.
# SPDX-License-Identifier: MIT
"""MoatScope Configuration (Pydantic Settings, v2)

Summary:
    Typed, validated application configuration. This module centralizes
    environment parsing and validation; only Adapters/Infrastructure/
    dependencies read it at runtime, other layers receive plain values via DI.

Design:
    - Pydantic v2 BaseSettings with `extra='forbid'` to catch unknown keys.
    - Explicit field declarations with constrained types and ranges.
    - Credentials are `SecretStr | None`. An absent credential is not a load
      error; it becomes a ConfigurationError when a request needs it.
    - Singleton accessor `get_settings()` with LRU cache.
    - Safe, structured logging (no secrets).
"""

from __future__ import annotations

import logging
from enum import Enum
from functools import lru_cache
from typing import Literal

from pydantic import Field, SecretStr, ValidationError, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from moatscope_api.domain.enums.analysis import ProviderName

logger = logging.getLogger(__name__)


class Environment(str, Enum):
    """Logical deployment environment."""

    DEVELOPMENT = "development"
    TEST = "test"
    STAGING = "staging"
    PRODUCTION = "production"


def _secret_value(secret: SecretStr | None) -> str | None:
    if secret is None:
        return None
    value = secret.get_secret_value().strip()
    return value or None


class Settings(BaseSettings):
    """Typed application configuration for MoatScope."""

    # ---------------------------
    # Core environment
    # ---------------------------
    environment: Environment = Field(
        default=Environment.DEVELOPMENT,
        description="Logical deployment environment.",
        validation_alias="ENVIRONMENT",
    )
    service_version: str | None = Field(
        default=None,
        description="Service version reported in logs and OpenAPI.",
        validation_alias="SERVICE_VERSION",
    )
    log_level: str | None = Field(
        default=None,
        description="Override log level (e.g., 'DEBUG', 'INFO').",
        validation_alias="LOG_LEVEL",
    )
    cors_allow_origins_raw: str | None = Field(
        default=None,
        description="Raw env for allowed CORS origins (comma-separated).",
        validation_alias="ALLOWED_ORIGINS",
    )
    cors_allow_origins: list[str] = Field(
        default_factory=list,
        description="Allowed CORS origins, derived from ALLOWED_ORIGINS.",
    )

    # ---------------------------
    # Statement providers
    # ---------------------------
    statement_provider: ProviderName = Field(
        default=ProviderName.ALPHA_VANTAGE,
        description="Provider serving profile, statements, market data and earnings.",
        validation_alias="STATEMENT_PROVIDER",
    )
    alpha_vantage_api_key: SecretStr | None = Field(
        default=None,
        description="Alpha Vantage API key.",
        validation_alias="ALPHA_VANTAGE_API_KEY",
    )
    alpha_vantage_base_url: str = Field(
        default="https://www.alphavantage.co/query",
        description="Alpha Vantage query endpoint.",
        validation_alias="ALPHA_VANTAGE_BASE_URL",
    )
    fmp_api_key: SecretStr | None = Field(
        default=None,
        description="Financial Modeling Prep API key.",
        validation_alias="FMP_API_KEY",
    )
    fmp_base_url: str = Field(
        default="https://financialmodelingprep.com/api/v3",
        description="Financial Modeling Prep v3 base URL.",
        validation_alias="FMP_BASE_URL",
    )

    # ---------------------------
    # Upstream fetching
    # ---------------------------
    upstream_timeout_s: float = Field(
        default=10.0,
        ge=0.1,
        le=120.0,
        description="Timeout of a single upstream attempt in seconds.",
        validation_alias="UPSTREAM_TIMEOUT_S",
    )
    upstream_max_attempts: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Attempts per upstream request, including the first.",
        validation_alias="UPSTREAM_MAX_ATTEMPTS",
    )
    upstream_backoff_base_s: float = Field(
        default=1.0,
        ge=0.0,
        le=60.0,
        description="Backoff before the second attempt; doubles per attempt.",
        validation_alias="UPSTREAM_BACKOFF_BASE_S",
    )
    upstream_backoff_cap_s: float = Field(
        default=30.0,
        ge=0.0,
        le=300.0,
        description="Maximum backoff between attempts in seconds.",
        validation_alias="UPSTREAM_BACKOFF_CAP_S",
    )
    upstream_max_concurrency: int = Field(
        default=4,
        ge=1,
        le=32,
        description="Concurrent attempts per destination within one analysis.",
        validation_alias="UPSTREAM_MAX_CONCURRENCY",
    )
    analysis_timeout_s: float = Field(
        default=45.0,
        ge=1.0,
        le=600.0,
        description="Overall deadline for fetching one company's data.",
        validation_alias="ANALYSIS_TIMEOUT_S",
    )

    # ---------------------------
    # Narrative service
    # ---------------------------
    anthropic_api_key: SecretStr | None = Field(
        default=None,
        description="API key for the narrative service.",
        validation_alias="ANTHROPIC_API_KEY",
    )
    anthropic_base_url: str = Field(
        default="https://api.anthropic.com",
        description="Narrative service base URL.",
        validation_alias="ANTHROPIC_BASE_URL",
    )
    anthropic_model: str = Field(
        default="claude-sonnet-4-20250514",
        description="Model used to write the narrative report.",
        validation_alias="ANTHROPIC_MODEL",
    )
    anthropic_version: str = Field(
        default="2023-06-01",
        description="Value of the anthropic-version header.",
        validation_alias="ANTHROPIC_VERSION",
    )
    anthropic_max_tokens: int = Field(
        default=8000,
        ge=256,
        le=64_000,
        description="Maximum tokens of the narrative response.",
        validation_alias="ANTHROPIC_MAX_TOKENS",
    )
    narrative_timeout_s: float = Field(
        default=120.0,
        ge=1.0,
        le=600.0,
        description="Timeout of the narrative call in seconds.",
        validation_alias="NARRATIVE_TIMEOUT_S",
    )

    # ---------------------------
    # Response cache
    # ---------------------------
    cache_backend: Literal["memory", "redis"] = Field(
        default="memory",
        description="Response cache backend.",
        validation_alias="CACHE_BACKEND",
    )
    cache_ttl_seconds: int = Field(
        default=3600,
        ge=0,
        le=7 * 24 * 60 * 60,
        description="Time-to-live of cached upstream payloads.",
        validation_alias="CACHE_TTL_SECONDS",
    )
    cache_sweep_interval_seconds: int = Field(
        default=600,
        ge=1,
        le=24 * 60 * 60,
        description="Interval of the in-memory expiry sweep.",
        validation_alias="CACHE_SWEEP_INTERVAL_SECONDS",
    )
    redis_url: str | None = Field(
        default=None,
        description="Redis URL, required when CACHE_BACKEND=redis.",
        validation_alias="REDIS_URL",
    )
    redis_socket_timeout_s: float = Field(
        default=3.0,
        ge=0.1,
        le=60.0,
        description="Socket timeout in seconds for Redis commands.",
        validation_alias="REDIS_SOCKET_TIMEOUT_S",
    )

    # ---------------------------
    # Rate limiting
    # ---------------------------
    rate_limit_enabled: bool = Field(
        default=True,
        description="Enable the sliding-window rate limiter.",
        validation_alias="RATE_LIMIT_ENABLED",
    )
    rate_limit_window_seconds: int = Field(
        default=900,
        ge=1,
        le=24 * 60 * 60,
        description="Sliding window size in seconds.",
        validation_alias="RATE_LIMIT_WINDOW_SECONDS",
    )
    rate_limit_max_requests: int = Field(
        default=100,
        ge=1,
        le=100_000,
        description="Requests per client and window on /v1.",
        validation_alias="RATE_LIMIT_MAX_REQUESTS",
    )
    analysis_rate_limit_max_requests: int = Field(
        default=10,
        ge=1,
        le=10_000,
        description="Requests per client and window on /v1/analysis.",
        validation_alias="ANALYSIS_RATE_LIMIT_MAX_REQUESTS",
    )

    # ---------------------------
    # Analytics assumptions
    # ---------------------------
    risk_free_rate: float = Field(
        default=0.045,
        ge=0.0,
        le=0.5,
        description="CAPM risk-free rate.",
        validation_alias="RISK_FREE_RATE",
    )
    equity_risk_premium: float = Field(
        default=0.08,
        ge=0.0,
        le=0.5,
        description="CAPM equity risk premium.",
        validation_alias="EQUITY_RISK_PREMIUM",
    )
    fallback_tax_rate: float = Field(
        default=0.21,
        ge=0.0,
        le=1.0,
        description="Tax rate assumed when pre-tax income is zero.",
        validation_alias="FALLBACK_TAX_RATE",
    )
    implausible_roic: float = Field(
        default=1.0,
        gt=0.0,
        description="ROIC above this ratio is flagged as implausible.",
        validation_alias="IMPLAUSIBLE_ROIC",
    )
    trend_threshold: float = Field(
        default=0.01,
        ge=0.0,
        le=1.0,
        description="Minimum ROIC change for an improving/declining label.",
        validation_alias="TREND_THRESHOLD",
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="forbid",
        case_sensitive=False,
    )

    @model_validator(mode="after")
    def _compute_cors_and_cache(self) -> Settings:
        """Compute the CORS list and validate the cache backend.

        Raises:
            ValueError: If CORS or cache invariants are violated.
        """
        raw = (self.cors_allow_origins_raw or "").strip()
        entries = [e.strip() for e in raw.split(",") if e.strip()]
        if "*" in entries and self.environment not in (
            Environment.DEVELOPMENT,
            Environment.TEST,
        ):
            raise ValueError("'*' CORS origin is only allowed in development/test environments.")
        self.cors_allow_origins = entries

        if self.cache_backend == "redis" and not self.redis_url:
            raise ValueError("CACHE_BACKEND=redis requires REDIS_URL.")
        return self

    # --------------------------------------------------------------------- #
    # Credential helpers
    # --------------------------------------------------------------------- #
    @property
    def alpha_vantage_key(self) -> str | None:
        return _secret_value(self.alpha_vantage_api_key)

    @property
    def fmp_key(self) -> str | None:
        return _secret_value(self.fmp_api_key)

    @property
    def anthropic_key(self) -> str | None:
        return _secret_value(self.anthropic_api_key)

    def configured_credentials(self) -> dict[str, bool]:
        """Return which credentials are present, never their values."""
        return {
            "alpha_vantage": self.alpha_vantage_key is not None,
            "fmp": self.fmp_key is not None,
            "anthropic": self.anthropic_key is not None,
        }


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached singleton `Settings` instance.

    Raises:
        RuntimeError: If configuration is invalid.
    """
    try:
        settings = Settings()
    except ValidationError as exc:
        logger.error(
            "Settings validation failed",
            extra={"extra": {"errors": exc.errors(include_input=False)}},
        )
        raise RuntimeError("Invalid application configuration") from exc

    logger.info(
        "Settings initialized",
        extra={
            "extra": {
                "environment": settings.environment.value,
                "statement_provider": settings.statement_provider.value,
                "credentials": settings.configured_credentials(),
                "cache_backend": settings.cache_backend,
                "cache_ttl_seconds": settings.cache_ttl_seconds,
                "rate_limit_enabled": settings.rate_limit_enabled,
                "cors_count": len(settings.cors_allow_origins),
            }
        },
    )
    return settings
