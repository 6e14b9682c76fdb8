"""Application settings via pydantic-settings. Loads from environment and .env file."""

from __future__ import annotations

import secrets
from datetime import timedelta

from pydantic import model_validator
from pydantic_settings import BaseSettings

from quizcore.models.rate_limit import TIERS

DEFAULT_MODEL = "claude-sonnet-4-5-20250929"

VALID_ENVS = frozenset({"development", "staging", "production"})


class Settings(BaseSettings):
    """quizcore application configuration.

    All values can be overridden via environment variables or .env file.
    """

    # External services
    anthropic_api_key: str = ""
    anthropic_model: str = DEFAULT_MODEL
    anthropic_max_tokens: int = 1000

    # Environment
    quizcore_env: str = "development"

    # Rate limiting
    quizcore_default_tier: str = "free"
    quizcore_burst_window_seconds: int = 60
    quizcore_inactivity_ttl_seconds: int = 86400
    quizcore_cleanup_interval_seconds: int = 3600  # 0 disables the cleanup job

    # Admin endpoints (X-Admin-Token header); not required in development
    quizcore_admin_token: str = ""

    # Logging
    quizcore_log_level: str = "INFO"

    model_config = {"env_prefix": "", "env_file": ".env", "extra": "ignore"}

    @model_validator(mode="after")
    def _check_env_and_tier(self) -> Settings:
        if self.quizcore_env not in VALID_ENVS:
            msg = f"QUIZCORE_ENV must be one of {sorted(VALID_ENVS)}, got {self.quizcore_env!r}"
            raise ValueError(msg)
        if self.quizcore_default_tier not in TIERS:
            msg = (
                f"QUIZCORE_DEFAULT_TIER must be one of {list(TIERS)}, "
                f"got {self.quizcore_default_tier!r}"
            )
            raise ValueError(msg)
        if self.quizcore_default_tier == "admin":
            raise ValueError("QUIZCORE_DEFAULT_TIER cannot be 'admin'")
        return self

    @model_validator(mode="after")
    def _ensure_admin_token(self) -> Settings:
        """Auto-generate the admin token in dev; reject a missing token in production."""
        if not self.quizcore_admin_token:
            if self.quizcore_env == "production":
                msg = (
                    "QUIZCORE_ADMIN_TOKEN must be set in production. "
                    "Generate one with: python -c "
                    '"import secrets; print(secrets.token_urlsafe(32))"'
                )
                raise ValueError(msg)
            self.quizcore_admin_token = secrets.token_urlsafe(32)
        return self

    @property
    def burst_window(self) -> timedelta:
        return timedelta(seconds=self.quizcore_burst_window_seconds)

    @property
    def inactivity_ttl(self) -> timedelta:
        return timedelta(seconds=self.quizcore_inactivity_ttl_seconds)

    @property
    def admin_auth_required(self) -> bool:
        """Admin routes are open in development for local testing."""
        return self.quizcore_env != "development"
