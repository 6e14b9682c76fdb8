"""Shared test fixtures."""

from datetime import UTC, datetime, timedelta

import pytest

from quizcore.config import Settings
from quizcore.core.rate_limiter import RateLimiter


class FakeClock:
    """Injectable clock that only moves when told to."""

    def __init__(self, start: datetime | None = None) -> None:
        self.current = start or datetime(2025, 6, 1, 12, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs: float) -> None:
        self.current += timedelta(**kwargs)


@pytest.fixture
def settings() -> Settings:
    """Test settings with defaults and no background scheduler."""
    return Settings(
        quizcore_env="development",
        quizcore_cleanup_interval_seconds=0,
        anthropic_api_key="",
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def limiter(clock: FakeClock) -> RateLimiter:
    return RateLimiter(clock=clock)
