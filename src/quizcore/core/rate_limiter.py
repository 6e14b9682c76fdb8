"""Tiered, fixed-window request rate limiting held in process memory.

Each user gets a counter that resets in full once its window expires
(``now >= reset_time``). A burst of up to twice the hourly quota is possible
across a window boundary; that is a property of fixed windows.

``check_limit`` never increments. Callers that do real work between the
check and the accounting (an LLM call, say) call ``record_usage`` afterwards.
Under concurrent requests from the same user both may pass the check before
either records, overrunning the quota. ``acquire`` performs the check and the
increment under one lock for callers that cannot tolerate that.

The limiter does not schedule itself; something external should call
``cleanup()`` periodically (see main.py).
"""

from __future__ import annotations

import logging
import math
import threading
from collections.abc import Callable, Mapping
from datetime import UTC, datetime, timedelta

from pydantic import ValidationError

from quizcore.errors import InvalidInputError
from quizcore.models.rate_limit import (
    DEFAULT_TIER_CONFIGS,
    TIERS,
    RateLimitCheck,
    RateLimitConfig,
    Tier,
    UsageWindow,
    UserRateState,
    UserUsage,
    UserUsageEntry,
    format_quota,
)

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]

DEFAULT_BURST_WINDOW = timedelta(seconds=60)
DEFAULT_INACTIVITY_TTL = timedelta(hours=24)

# Window used when usage is recorded for a user nobody has checked yet.
FALLBACK_TIER: Tier = "free"


def utc_now() -> datetime:
    return datetime.now(UTC)


def _remaining(config: RateLimitConfig, requests: int) -> int | float:
    return max(0, config.requests_per_hour - requests)


class RateLimiter:
    """Per-user request quotas keyed by subscription tier.

    Construct one per application and hand it to whatever needs it; tests
    pass a fake ``clock`` to move time forward.
    """

    def __init__(
        self,
        configs: Mapping[str, RateLimitConfig] | None = None,
        clock: Clock | None = None,
        burst_window: timedelta = DEFAULT_BURST_WINDOW,
        inactivity_ttl: timedelta = DEFAULT_INACTIVITY_TTL,
    ) -> None:
        source = DEFAULT_TIER_CONFIGS if configs is None else configs
        missing = set(TIERS) - set(source)
        if missing:
            raise InvalidInputError(f"Missing rate limit configs for tiers: {sorted(missing)}")
        unknown = set(source) - set(TIERS)
        if unknown:
            raise InvalidInputError(f"Unknown rate limit tiers: {sorted(unknown)}")
        self._configs: dict[str, RateLimitConfig] = {tier: source[tier] for tier in TIERS}
        self._clock: Clock = clock or utc_now
        self._burst_window = burst_window
        self._inactivity_ttl = inactivity_ttl
        self._states: dict[str, UserRateState] = {}
        self._lock = threading.Lock()

    def now(self) -> datetime:
        """Current time according to the injected clock."""
        return self._clock()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _config_for(self, tier: str) -> RateLimitConfig:
        config = self._configs.get(tier)
        if config is None:
            raise InvalidInputError(f"Unknown tier {tier!r}. Must be one of: {list(TIERS)}")
        return config

    def _state_for(self, user_id: str, config: RateLimitConfig, now: datetime) -> UserRateState:
        """Fetch the user's state, creating it or rolling its window as needed.

        Caller must hold the lock.
        """
        state = self._states.get(user_id)
        if state is None:
            state = UserRateState(
                requests=0,
                tokens=0,
                reset_time=now + config.reset_window,
                last_request=now,
            )
            self._states[user_id] = state
            logger.debug("rate_limit_state_created user=%s tier=%s", user_id, config.tier)
        elif now >= state.reset_time:
            state.requests = 0
            state.tokens = 0
            state.reset_time = now + config.reset_window
            logger.debug("rate_limit_window_reset user=%s tier=%s", user_id, config.tier)
        return state

    def _admin_check(self, config: RateLimitConfig, now: datetime) -> RateLimitCheck:
        return RateLimitCheck(
            allowed=True,
            remaining=math.inf,
            reset_time=(now + config.reset_window).isoformat(),
            tier=config.tier,
        )

    # ------------------------------------------------------------------
    # Checking and accounting
    # ------------------------------------------------------------------

    def check_limit(self, user_id: str, tier: str) -> RateLimitCheck:
        """Report whether ``user_id`` may make another request. Does not count one.

        The admin tier is always allowed and never touches stored state.
        """
        config = self._config_for(tier)
        now = self._clock()
        if config.tier == "admin":
            return self._admin_check(config, now)

        with self._lock:
            state = self._state_for(user_id, config, now)
            requests = state.requests
            allowed = requests < config.requests_per_hour
            check = RateLimitCheck(
                allowed=allowed,
                remaining=_remaining(config, requests),
                reset_time=state.reset_time.isoformat(),
                tier=config.tier,
            )
        if not allowed:
            logger.info(
                "rate_limit_denied user=%s tier=%s requests=%d reset=%s",
                user_id,
                tier,
                requests,
                check.reset_time,
            )
        return check

    def record_usage(self, user_id: str, tokens_used: int = 1, tier: str | None = None) -> None:
        """Count one completed request and the tokens it consumed.

        Creates the user's state if it does not exist yet, using ``tier``'s
        window (the free tier's when no tier is given). Admin usage is not
        tracked, so admins never hold state.
        """
        if tokens_used < 0:
            raise InvalidInputError(f"tokens_used cannot be negative, got {tokens_used}")
        config = self._config_for(tier if tier is not None else FALLBACK_TIER)
        if config.tier == "admin":
            return
        now = self._clock()
        with self._lock:
            state = self._states.get(user_id)
            if state is None:
                state = self._state_for(user_id, config, now)
            state.requests += 1
            state.tokens += tokens_used
            state.last_request = now

    def acquire(self, user_id: str, tier: str, tokens_used: int = 1) -> RateLimitCheck:
        """Check and count a request in one step.

        Usage is recorded only when the request is allowed. ``remaining``
        reflects the count after this request.
        """
        if tokens_used < 0:
            raise InvalidInputError(f"tokens_used cannot be negative, got {tokens_used}")
        config = self._config_for(tier)
        now = self._clock()
        if config.tier == "admin":
            return self._admin_check(config, now)

        with self._lock:
            state = self._state_for(user_id, config, now)
            allowed = state.requests < config.requests_per_hour
            if allowed:
                state.requests += 1
                state.tokens += tokens_used
                state.last_request = now
            check = RateLimitCheck(
                allowed=allowed,
                remaining=_remaining(config, state.requests),
                reset_time=state.reset_time.isoformat(),
                tier=config.tier,
            )
        if not allowed:
            logger.info("rate_limit_denied user=%s tier=%s atomic=true", user_id, tier)
        return check

    def check_burst_limit(self, user_id: str, tier: str) -> bool:
        """Coarse guard against rapid-fire requests within the burst window.

        A user idle for longer than the burst window always passes.
        """
        config = self._config_for(tier)
        if config.tier == "admin":
            return True
        now = self._clock()
        with self._lock:
            state = self._states.get(user_id)
            if state is None:
                return True
            if now - state.last_request > self._burst_window:
                return True
            within = state.requests <= config.burst_limit
        if not within:
            logger.info("burst_limit_exceeded user=%s tier=%s", user_id, tier)
        return within

    # ------------------------------------------------------------------
    # Read-only projections
    # ------------------------------------------------------------------

    def get_usage(self, user_id: str, tier: str) -> UsageWindow:
        """Raw counters and the start of the user's current window."""
        config = self._config_for(tier)
        with self._lock:
            state = self._states.get(user_id)
            if state is None:
                return UsageWindow(
                    requests=0,
                    tokens=0,
                    window_start=self._clock() - config.reset_window,
                )
            return UsageWindow(
                requests=state.requests,
                tokens=state.tokens,
                window_start=state.reset_time - config.reset_window,
            )

    def get_user_usage(self, user_id: str, tier: str) -> UserUsage:
        config = self._config_for(tier)
        with self._lock:
            state = self._states.get(user_id)
            if state is None:
                return UserUsage(
                    requests=0,
                    tokens=0,
                    remaining=config.requests_per_hour,
                    reset_time=(self._clock() + config.reset_window).isoformat(),
                    tier=config.tier,
                )
            return UserUsage(
                requests=state.requests,
                tokens=state.tokens,
                remaining=_remaining(config, state.requests),
                reset_time=state.reset_time.isoformat(),
                tier=config.tier,
            )

    def get_rate_limit_headers(self, user_id: str, tier: str) -> dict[str, str]:
        """``X-RateLimit-*`` response headers describing the user's quota."""
        usage = self.get_user_usage(user_id, tier)
        config = self._configs[usage.tier]
        return {
            "X-RateLimit-Limit": format_quota(config.requests_per_hour),
            "X-RateLimit-Remaining": format_quota(usage.remaining),
            "X-RateLimit-Reset": usage.reset_time,
            "X-RateLimit-Tier": usage.tier,
        }

    def get_all_usage(self) -> list[UserUsageEntry]:
        with self._lock:
            return [
                UserUsageEntry(
                    user_id=user_id,
                    requests=state.requests,
                    tokens=state.tokens,
                    last_request=state.last_request,
                    reset_time=state.reset_time,
                )
                for user_id, state in self._states.items()
            ]

    # ------------------------------------------------------------------
    # Administration
    # ------------------------------------------------------------------

    def get_config(self, tier: str) -> RateLimitConfig:
        return self._config_for(tier)

    def get_configs(self) -> dict[str, RateLimitConfig]:
        return dict(self._configs)

    def update_config(self, tier: str, **changes: object) -> RateLimitConfig:
        """Replace fields of a tier's config. The tier name itself cannot change."""
        current = self._config_for(tier)
        if "tier" in changes and changes["tier"] != current.tier:
            raise InvalidInputError("Cannot rename a tier")
        try:
            updated = RateLimitConfig.model_validate({**current.model_dump(), **changes})
        except ValidationError as exc:
            raise InvalidInputError.from_validation_error(exc, "rate limit config") from exc
        with self._lock:
            self._configs[current.tier] = updated
        logger.info(
            "rate_limit_config_updated tier=%s fields=%s",
            current.tier,
            ",".join(sorted(changes)),
        )
        return updated

    def reset_user_limits(self, user_id: str) -> bool:
        """Forget a user's counters. Returns False if there was nothing to forget."""
        with self._lock:
            removed = self._states.pop(user_id, None) is not None
        if removed:
            logger.info("rate_limit_user_reset user=%s", user_id)
        return removed

    def cleanup(self) -> int:
        """Drop users idle for longer than the inactivity TTL. Returns how many."""
        now = self._clock()
        with self._lock:
            stale = [
                user_id
                for user_id, state in self._states.items()
                if now - state.last_request > self._inactivity_ttl
            ]
            for user_id in stale:
                del self._states[user_id]
        if stale:
            logger.info("rate_limit_cleanup removed=%d", len(stale))
        return len(stale)

    def __len__(self) -> int:
        return len(self._states)
