"""FastAPI dependency injection for settings, the rate limiter, and the generator.

All three live on ``app.state``; ``create_app()`` puts them there.
"""

from __future__ import annotations

import logging
import secrets
from typing import Annotated

from fastapi import Depends, Header, HTTPException, Request

from quizcore.ai.generator import ContentGenerator
from quizcore.config import Settings
from quizcore.core.rate_limiter import RateLimiter
from quizcore.models.rate_limit import TIERS

logger = logging.getLogger(__name__)


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_rate_limiter(request: Request) -> RateLimiter:
    return request.app.state.rate_limiter


def get_generator(request: Request) -> ContentGenerator:
    return request.app.state.generator


SettingsDep = Annotated[Settings, Depends(get_settings)]
RateLimiterDep = Annotated[RateLimiter, Depends(get_rate_limiter)]
GeneratorDep = Annotated[ContentGenerator, Depends(get_generator)]


def validate_tier(tier: str) -> str:
    """Reject tier strings outside the closed set with a 422."""
    if tier not in TIERS:
        raise HTTPException(
            status_code=422,
            detail=f"Invalid tier '{tier}'. Must be one of: {list(TIERS)}",
        )
    return tier


def admin_token_valid(settings: Settings, token: str | None) -> bool:
    """True when ``token`` matches the configured admin token."""
    return token is not None and secrets.compare_digest(token, settings.quizcore_admin_token)


async def require_admin(
    settings: SettingsDep,
    x_admin_token: Annotated[str | None, Header()] = None,
) -> None:
    """Gate admin routes on the ``X-Admin-Token`` header.

    Development mode allows unauthenticated access for local testing.
    """
    if not settings.admin_auth_required:
        return
    if not admin_token_valid(settings, x_admin_token):
        logger.warning("admin_access_denied env=%s", settings.quizcore_env)
        raise HTTPException(status_code=403, detail="Admin access required")


async def caller_tier(
    settings: SettingsDep,
    x_user_tier: Annotated[str | None, Header()] = None,
    x_admin_token: Annotated[str | None, Header()] = None,
) -> str:
    """The tier a request is charged against.

    ``X-User-Tier`` is a client claim, so it only counts alongside a valid
    ``X-Admin-Token``. This holds in development too. Everyone else gets
    the configured default tier.
    """
    if x_user_tier is None:
        return settings.quizcore_default_tier
    tier = validate_tier(x_user_tier)
    if tier != settings.quizcore_default_tier and not admin_token_valid(
        settings, x_admin_token
    ):
        logger.warning("tier_claim_ignored claimed=%s", tier)
        return settings.quizcore_default_tier
    return tier


CallerTierDep = Annotated[str, Depends(caller_tier)]
