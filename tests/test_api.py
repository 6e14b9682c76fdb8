"""HTTP tests for the quizcore API (in-process ASGI, mocked Anthropic client)."""

from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import anthropic
import httpx
import pytest
from httpx import ASGITransport, AsyncClient

from quizcore.ai.generator import ContentGenerator
from quizcore.config import Settings
from quizcore.core.rate_limiter import RateLimiter
from quizcore.main import create_app, run_cleanup


def _fake_client(side_effect: object = None) -> MagicMock:
    client = MagicMock()
    client.messages.create = AsyncMock(
        return_value=SimpleNamespace(
            content=[SimpleNamespace(type="text", text="Generated copy")],
            usage=SimpleNamespace(input_tokens=12, output_tokens=30),
        ),
        side_effect=side_effect,
    )
    return client


def _generator(client: MagicMock | None = None) -> ContentGenerator:
    return ContentGenerator(
        api_key="", model="claude-haiku-4-5-20251001", client=client or _fake_client()
    )


@pytest.fixture
def app(settings: Settings, limiter: RateLimiter):
    return create_app(settings, rate_limiter=limiter, generator=_generator())


@pytest.fixture
async def client(app):
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


def _generate(
    client: AsyncClient,
    user: str = "alice",
    tier: str | None = None,
    admin_token: str | None = None,
    **body,
):
    headers = {"X-User-Id": user}
    if tier is not None:
        headers["X-User-Tier"] = tier
    if admin_token is not None:
        headers["X-Admin-Token"] = admin_token
    return client.post("/api/generate", json={"prompt": "Write a tagline", **body}, headers=headers)


ALICE = {"X-User-Id": "alice"}


def _session(**overrides: object) -> dict:
    question = {
        "time_remaining": 15,
        "difficulty": "easy",
        "streak": 1,
        "total_time": 15,
        "question_time_limit": 30,
        "is_correct": True,
    }
    session = {
        "questions": [question, {**question, "streak": 2}],
        "total_questions": 2,
        "correct_answers": 2,
        "total_time": 30,
        "difficulty": "easy",
        "perfect_streak": 2,
    }
    session.update(overrides)
    return session


async def test_health(client: AsyncClient) -> None:
    resp = await client.get("/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok", "env": "development", "generation": "enabled"}


async def test_health_reports_disabled_generation(settings: Settings) -> None:
    app = create_app(settings, generator=ContentGenerator(api_key="", model="claude-test"))
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        resp = await c.get("/health")
    assert resp.json()["generation"] == "disabled"


class TestScoreEndpoints:
    async def test_question(self, client: AsyncClient) -> None:
        resp = await client.post(
            "/api/score/question",
            json={
                "time_remaining": 20,
                "difficulty": "medium",
                "streak": 4,
                "total_time": 10,
                "is_correct": True,
            },
        )
        assert resp.status_code == 200
        data = resp.json()
        assert data["total"] == 233
        assert data["multiplier"] == 1.5

    async def test_question_incorrect(self, client: AsyncClient) -> None:
        resp = await client.post("/api/score/question", json={"is_correct": False})
        assert resp.status_code == 200
        assert resp.json()["total"] == 0
        assert resp.json()["multiplier"] is None

    @pytest.mark.parametrize(
        "body",
        [
            {"difficulty": "impossible"},
            {"time_remaining": 45, "question_time_limit": 30},
            {"question_time_limit": 0},
            {"streak": -1},
        ],
    )
    async def test_question_rejects_invalid(self, client: AsyncClient, body: dict) -> None:
        resp = await client.post("/api/score/question", json=body)
        assert resp.status_code == 422

    async def test_final(self, client: AsyncClient) -> None:
        resp = await client.post("/api/score/final", json=_session())
        assert resp.status_code == 200
        data = resp.json()
        assert data["stats"]["accuracy"] == 100
        assert data["stats"]["average_time"] == 15
        assert data["breakdown"]["performance_bonuses"]["perfect_game"] == 500
        assert data["breakdown"]["performance_bonuses"]["speed_completion"] == 100

    async def test_final_rejects_more_correct_than_total(self, client: AsyncClient) -> None:
        resp = await client.post(
            "/api/score/final", json=_session(total_questions=2, correct_answers=3)
        )
        assert resp.status_code == 422

    async def test_summary(self, client: AsyncClient) -> None:
        resp = await client.post("/api/score/summary", json=_session())
        assert resp.status_code == 200
        data = resp.json()
        assert data["score"] == 1180
        assert data["rank"]["name"] == "Trainee"
        assert data["display_text"]["accuracy"] == "100%"
        assert data["display_text"]["average_time"] == "15s"
        assert "perfect_accuracy" in {a["id"] for a in data["achievements"]}

    async def test_rank(self, client: AsyncClient) -> None:
        resp = await client.get("/api/score/rank", params={"score": 5000})
        assert resp.status_code == 200
        data = resp.json()
        assert data["name"] == "Cosmic Entity"
        assert data["score"] == 5000
        assert data["progress"]["percentage"] == 100
        assert data["progress"]["next_rank"] is None

    async def test_rank_mid_ladder(self, client: AsyncClient) -> None:
        resp = await client.get("/api/score/rank", params={"score": 1500})
        data = resp.json()
        assert data["name"] == "Trainee"
        assert data["progress"]["percentage"] == 50
        assert data["progress"]["next_rank"] == "Skilled Fighter"

    async def test_rank_rejects_negative(self, client: AsyncClient) -> None:
        resp = await client.get("/api/score/rank", params={"score": -1})
        assert resp.status_code == 422


class TestUsageEndpoint:
    async def test_fresh_user(self, client: AsyncClient) -> None:
        resp = await client.get("/api/rate-limits/alice", headers=ALICE)
        assert resp.status_code == 200
        assert resp.json()["requests"] == 0
        assert resp.json()["remaining"] == 10
        assert resp.json()["tier"] == "free"
        assert resp.headers["X-RateLimit-Limit"] == "10"
        assert resp.headers["X-RateLimit-Remaining"] == "10"
        assert resp.headers["X-RateLimit-Tier"] == "free"

    async def test_explicit_tier(self, client: AsyncClient) -> None:
        resp = await client.get(
            "/api/rate-limits/alice", params={"tier": "corporate"}, headers=ALICE
        )
        assert resp.headers["X-RateLimit-Limit"] == "100"

    async def test_unknown_tier(self, client: AsyncClient) -> None:
        resp = await client.get("/api/rate-limits/alice", params={"tier": "gold"}, headers=ALICE)
        assert resp.status_code == 422

    async def test_other_users_usage_hidden(self, client: AsyncClient) -> None:
        resp = await client.get("/api/rate-limits/alice", headers={"X-User-Id": "mallory"})
        assert resp.status_code == 403
        resp = await client.get("/api/rate-limits/alice")
        assert resp.status_code == 403

    async def test_admin_token_reads_any_user(
        self, client: AsyncClient, settings: Settings
    ) -> None:
        resp = await client.get(
            "/api/rate-limits/alice",
            headers={"X-Admin-Token": settings.quizcore_admin_token},
        )
        assert resp.status_code == 200
        assert resp.json()["tier"] == "free"


class TestGenerate:
    async def test_success_records_usage(self, client: AsyncClient, limiter: RateLimiter) -> None:
        resp = await _generate(client, context="Portfolio site")
        assert resp.status_code == 200
        data = resp.json()
        assert data["success"] is True
        assert data["content"] == "Generated copy"
        assert data["usage"] == {"input_tokens": 12, "output_tokens": 30, "total_tokens": 42}
        assert resp.headers["X-RateLimit-Remaining"] == "9"

        usage = limiter.get_usage("alice", "free")
        assert usage.requests == 1
        assert usage.tokens == 42

    async def test_hourly_limit(self, client: AsyncClient, clock) -> None:
        for _ in range(10):
            resp = await _generate(client)
            assert resp.status_code == 200
            clock.advance(seconds=61)

        resp = await _generate(client)
        assert resp.status_code == 429
        data = resp.json()
        assert data["success"] is False
        assert data["error"] == "Hourly request limit exceeded"
        # Window opened at t=0 and the 11th request arrives at t=610.
        assert data["retry_after"] == 2990
        assert resp.headers["Retry-After"] == "2990"
        assert resp.headers["X-RateLimit-Remaining"] == "0"

    async def test_window_reset_allows_again(self, client: AsyncClient, clock) -> None:
        for _ in range(10):
            await _generate(client)
            clock.advance(seconds=61)
        assert (await _generate(client)).status_code == 429

        clock.advance(hours=1)
        assert (await _generate(client)).status_code == 200

    async def test_burst_limit(self, client: AsyncClient) -> None:
        for _ in range(4):
            assert (await _generate(client)).status_code == 200

        resp = await _generate(client)
        assert resp.status_code == 429
        assert resp.json()["error"] == "Too many requests in a short period"

    async def test_burst_clears_after_window(self, client: AsyncClient, clock) -> None:
        for _ in range(4):
            await _generate(client)
        clock.advance(seconds=61)
        assert (await _generate(client)).status_code == 200

    async def test_claimed_admin_tier_ignored(
        self, client: AsyncClient, limiter: RateLimiter
    ) -> None:
        for _ in range(4):
            resp = await _generate(client, user="mallory", tier="admin")
            assert resp.status_code == 200
            assert resp.headers["X-RateLimit-Tier"] == "free"

        resp = await _generate(client, user="mallory", tier="admin")
        assert resp.status_code == 429
        assert resp.headers["X-RateLimit-Tier"] == "free"
        assert limiter.get_usage("mallory", "free").requests == 4

    async def test_claimed_tier_with_wrong_token_ignored(self, client: AsyncClient) -> None:
        resp = await _generate(client, tier="enterprise", admin_token="guess")
        assert resp.status_code == 200
        assert resp.headers["X-RateLimit-Limit"] == "10"

    async def test_admin_tier_with_token_unlimited(
        self, client: AsyncClient, settings: Settings, limiter: RateLimiter
    ) -> None:
        for _ in range(12):
            resp = await _generate(
                client, user="root", tier="admin", admin_token=settings.quizcore_admin_token
            )
            assert resp.status_code == 200
        assert resp.headers["X-RateLimit-Limit"] == "unlimited"
        assert resp.headers["X-RateLimit-Remaining"] == "unlimited"
        assert len(limiter) == 0

    async def test_default_tier_claim_needs_no_token(self, client: AsyncClient) -> None:
        resp = await _generate(client, tier="free")
        assert resp.status_code == 200
        assert resp.headers["X-RateLimit-Tier"] == "free"

    async def test_users_are_independent(self, client: AsyncClient) -> None:
        for _ in range(4):
            await _generate(client, user="alice")
        assert (await _generate(client, user="bob")).status_code == 200

    async def test_missing_user_id(self, client: AsyncClient) -> None:
        resp = await client.post("/api/generate", json={"prompt": "hi"})
        assert resp.status_code == 422

    async def test_unknown_tier(self, client: AsyncClient) -> None:
        resp = await _generate(client, tier="gold")
        assert resp.status_code == 422

    async def test_empty_prompt(self, client: AsyncClient) -> None:
        resp = await client.post("/api/generate", json={"prompt": ""}, headers={"X-User-Id": "a"})
        assert resp.status_code == 422

    async def test_generation_failure_not_counted(
        self, settings: Settings, limiter: RateLimiter
    ) -> None:
        error = anthropic.APIConnectionError(
            request=httpx.Request("POST", "https://api.anthropic.com/v1/messages")
        )
        app = create_app(
            settings, rate_limiter=limiter, generator=_generator(_fake_client(side_effect=error))
        )
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
            resp = await _generate(c)
        assert resp.status_code == 502
        assert limiter.get_usage("alice", "free").requests == 0


class TestAdminRoutes:
    async def test_list_configs(self, client: AsyncClient) -> None:
        resp = await client.get("/api/admin/rate-limits/configs")
        assert resp.status_code == 200
        configs = resp.json()
        assert set(configs) == {"free", "corporate", "enterprise", "admin"}
        assert configs["free"]["requests_per_hour"] == 10
        assert configs["admin"]["requests_per_hour"] == "unlimited"

    async def test_get_config(self, client: AsyncClient) -> None:
        resp = await client.get("/api/admin/rate-limits/configs/enterprise")
        assert resp.json()["burst_limit"] == 100

    async def test_update_config_takes_effect(self, client: AsyncClient) -> None:
        resp = await client.patch(
            "/api/admin/rate-limits/configs/free", json={"requests_per_hour": 1}
        )
        assert resp.status_code == 200
        assert resp.json()["requests_per_hour"] == 1
        assert resp.json()["burst_limit"] == 3

        assert (await _generate(client)).status_code == 200
        resp = await _generate(client)
        assert resp.status_code == 429
        assert resp.json()["error"] == "Hourly request limit exceeded"

    async def test_update_config_rejects_negative(self, client: AsyncClient) -> None:
        resp = await client.patch(
            "/api/admin/rate-limits/configs/free", json={"requests_per_hour": -5}
        )
        assert resp.status_code == 422

    async def test_users_and_reset(self, client: AsyncClient) -> None:
        await _generate(client, user="alice")
        resp = await client.get("/api/admin/rate-limits/users")
        assert [u["user_id"] for u in resp.json()] == ["alice"]

        resp = await client.delete("/api/admin/rate-limits/users/alice")
        assert resp.json() == {"user_id": "alice", "removed": True}
        resp = await client.delete("/api/admin/rate-limits/users/alice")
        assert resp.json()["removed"] is False

    async def test_cleanup(self, client: AsyncClient, clock) -> None:
        await _generate(client, user="alice")
        clock.advance(hours=25)
        await _generate(client, user="bob")

        resp = await client.post("/api/admin/rate-limits/cleanup")
        assert resp.json() == {"removed": 1, "active_users": 1}


class TestAdminAuth:
    @pytest.fixture
    def prod_app(self, limiter: RateLimiter):
        settings = Settings(
            quizcore_env="production",
            quizcore_admin_token="s3cret",
            quizcore_cleanup_interval_seconds=0,
        )
        return create_app(settings, rate_limiter=limiter, generator=_generator())

    async def test_missing_token_rejected(self, prod_app) -> None:
        async with AsyncClient(transport=ASGITransport(app=prod_app), base_url="http://test") as c:
            resp = await c.get("/api/admin/rate-limits/configs")
        assert resp.status_code == 403

    async def test_wrong_token_rejected(self, prod_app) -> None:
        async with AsyncClient(transport=ASGITransport(app=prod_app), base_url="http://test") as c:
            resp = await c.get(
                "/api/admin/rate-limits/configs", headers={"X-Admin-Token": "nope"}
            )
        assert resp.status_code == 403

    async def test_valid_token_accepted(self, prod_app) -> None:
        async with AsyncClient(transport=ASGITransport(app=prod_app), base_url="http://test") as c:
            resp = await c.get(
                "/api/admin/rate-limits/configs", headers={"X-Admin-Token": "s3cret"}
            )
        assert resp.status_code == 200

    async def test_public_routes_stay_open(self, prod_app) -> None:
        async with AsyncClient(transport=ASGITransport(app=prod_app), base_url="http://test") as c:
            resp = await c.get("/api/rate-limits/alice", headers=ALICE)
        assert resp.status_code == 200


class TestLifespan:
    async def test_schedules_cleanup_job(self, limiter: RateLimiter) -> None:
        settings = Settings(quizcore_cleanup_interval_seconds=600)
        app = create_app(settings, rate_limiter=limiter, generator=_generator())
        async with app.router.lifespan_context(app):
            scheduler = app.state.scheduler
            assert scheduler.running
            job = scheduler.get_job("rate_limit_cleanup")
            assert job is not None
            assert job.kwargs["limiter"] is limiter
        assert not scheduler.running

    async def test_disabled_when_interval_zero(self, settings: Settings) -> None:
        app = create_app(settings, generator=_generator())
        async with app.router.lifespan_context(app):
            assert app.state.scheduler is None

    def test_run_cleanup(self, limiter: RateLimiter, clock) -> None:
        limiter.record_usage("alice")
        clock.advance(hours=25)
        limiter.record_usage("bob")
        assert run_cleanup(limiter) == 1
        assert len(limiter) == 1
