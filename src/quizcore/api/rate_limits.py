"""Rate limit API: per-user usage for display, plus admin controls.

Usage reads are scoped to the caller's ``X-User-Id``. Admin routes are gated
by ``require_admin`` (X-Admin-Token outside development).
"""

from __future__ import annotations

from datetime import timedelta
from typing import Annotated

from fastapi import APIRouter, Depends, Header, HTTPException, Query, Response
from pydantic import BaseModel

from quizcore.api.deps import (
    RateLimiterDep,
    SettingsDep,
    admin_token_valid,
    require_admin,
    validate_tier,
)
from quizcore.models.rate_limit import Quota, RateLimitConfig, UserUsage, UserUsageEntry

router = APIRouter(prefix="/api/rate-limits", tags=["rate-limits"])

admin_router = APIRouter(
    prefix="/api/admin/rate-limits",
    tags=["admin"],
    dependencies=[Depends(require_admin)],
)


class ConfigUpdate(BaseModel):
    """Partial tier config update. Omitted fields keep their current value."""

    requests_per_hour: Quota | None = None
    requests_per_day: Quota | None = None
    burst_limit: Quota | None = None
    reset_window: timedelta | None = None


class CleanupResponse(BaseModel):
    removed: int
    active_users: int


class ResetResponse(BaseModel):
    user_id: str
    removed: bool


@router.get("/{user_id}", response_model=UserUsage)
async def get_user_usage(
    user_id: str,
    response: Response,
    limiter: RateLimiterDep,
    settings: SettingsDep,
    tier: Annotated[str | None, Query()] = None,
    x_user_id: Annotated[str | None, Header()] = None,
    x_admin_token: Annotated[str | None, Header()] = None,
) -> UserUsage:
    """Current usage for one user, with the same ``X-RateLimit-*`` headers the API sends.

    Only the user named by ``X-User-Id`` may read their own usage; the admin
    token reads anyone's.
    """
    if x_user_id != user_id and not admin_token_valid(settings, x_admin_token):
        raise HTTPException(status_code=403, detail="Usage is only visible to its owner")
    tier = validate_tier(tier or settings.quizcore_default_tier)
    response.headers.update(limiter.get_rate_limit_headers(user_id, tier))
    return limiter.get_user_usage(user_id, tier)


@admin_router.get("/configs", response_model=dict[str, RateLimitConfig])
async def list_configs(limiter: RateLimiterDep) -> dict[str, RateLimitConfig]:
    return limiter.get_configs()


@admin_router.get("/configs/{tier}", response_model=RateLimitConfig)
async def get_config(tier: str, limiter: RateLimiterDep) -> RateLimitConfig:
    return limiter.get_config(validate_tier(tier))


@admin_router.patch("/configs/{tier}", response_model=RateLimitConfig)
async def update_config(
    tier: str, body: ConfigUpdate, limiter: RateLimiterDep
) -> RateLimitConfig:
    """Change a tier's quota in memory (not persisted across restarts)."""
    changes = body.model_dump(exclude_none=True)
    return limiter.update_config(validate_tier(tier), **changes)


@admin_router.get("/users", response_model=list[UserUsageEntry])
async def list_users(limiter: RateLimiterDep) -> list[UserUsageEntry]:
    return limiter.get_all_usage()


@admin_router.delete("/users/{user_id}", response_model=ResetResponse)
async def reset_user(user_id: str, limiter: RateLimiterDep) -> ResetResponse:
    return ResetResponse(user_id=user_id, removed=limiter.reset_user_limits(user_id))


@admin_router.post("/cleanup", response_model=CleanupResponse)
async def run_cleanup(limiter: RateLimiterDep) -> CleanupResponse:
    """Run the inactivity cleanup now instead of waiting for the scheduled job."""
    removed = limiter.cleanup()
    return CleanupResponse(removed=removed, active_users=len(limiter))

