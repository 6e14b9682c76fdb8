"""Rate limiting models: tier configuration, per-user state, and check results.

See core/rate_limiter.py for the fixed-window semantics.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Annotated, Literal, get_args

from pydantic import (
    BaseModel,
    BeforeValidator,
    ConfigDict,
    PlainSerializer,
    field_validator,
)

Tier = Literal["free", "corporate", "enterprise", "admin"]

TIERS: tuple[str, ...] = get_args(Tier)

QUOTA_UNLIMITED = "unlimited"


def _parse_quota(value: object) -> object:
    if isinstance(value, str) and value.strip().lower() in (QUOTA_UNLIMITED, "inf", "infinity"):
        return math.inf
    return value


def format_quota(value: int | float) -> str:
    """Header/display form of a quota: digits, or "unlimited" for infinity."""
    if isinstance(value, float) and math.isinf(value):
        return QUOTA_UNLIMITED
    return str(int(value))


def _serialize_quota(value: int | float) -> int | str:
    if isinstance(value, float) and math.isinf(value):
        return QUOTA_UNLIMITED
    return int(value)


# JSON has no infinity; unlimited quotas travel as the string "unlimited".
Quota = Annotated[
    int | float,
    BeforeValidator(_parse_quota),
    PlainSerializer(_serialize_quota, when_used="json"),
]


class RateLimitConfig(BaseModel):
    """Quota for one subscription tier. ``math.inf`` means unlimited."""

    model_config = ConfigDict(frozen=True)

    tier: Tier
    requests_per_hour: Quota
    requests_per_day: Quota
    burst_limit: Quota
    reset_window: timedelta = timedelta(hours=1)

    @field_validator("requests_per_hour", "requests_per_day", "burst_limit")
    @classmethod
    def _whole_or_unlimited(cls, value: Quota) -> Quota:
        if isinstance(value, float):
            if math.isnan(value):
                raise ValueError("quota cannot be NaN")
            if value < 0:
                raise ValueError("quota cannot be negative")
            if not math.isinf(value):
                if not value.is_integer():
                    raise ValueError("quota must be a whole number or unlimited")
                return int(value)
        elif value < 0:
            raise ValueError("quota cannot be negative")
        return value

    @field_validator("reset_window")
    @classmethod
    def _positive_window(cls, value: timedelta) -> timedelta:
        if value <= timedelta(0):
            raise ValueError("reset_window must be positive")
        return value


DEFAULT_TIER_CONFIGS: dict[str, RateLimitConfig] = {
    "free": RateLimitConfig(
        tier="free", requests_per_hour=10, requests_per_day=50, burst_limit=3
    ),
    "corporate": RateLimitConfig(
        tier="corporate", requests_per_hour=100, requests_per_day=1000, burst_limit=20
    ),
    "enterprise": RateLimitConfig(
        tier="enterprise", requests_per_hour=1000, requests_per_day=10000, burst_limit=100
    ),
    "admin": RateLimitConfig(
        tier="admin",
        requests_per_hour=math.inf,
        requests_per_day=math.inf,
        burst_limit=math.inf,
    ),
}


@dataclass
class UserRateState:
    """Mutable counters for one user in the current window."""

    requests: int
    tokens: int
    reset_time: datetime
    last_request: datetime


class RateLimitCheck(BaseModel):
    """Outcome of a limit check. ``allowed=False`` is a normal result, not an error."""

    allowed: bool
    remaining: Quota
    reset_time: str
    tier: Tier


class UserUsage(BaseModel):
    requests: int
    tokens: int
    remaining: Quota
    reset_time: str
    tier: Tier


class UsageWindow(BaseModel):
    """Raw counters plus the start of the current window."""

    requests: int
    tokens: int
    window_start: datetime


class UserUsageEntry(BaseModel):
    user_id: str
    requests: int
    tokens: int
    last_request: datetime
    reset_time: datetime
