"""FastAPI application factory."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from quizcore.ai.generator import ContentGenerator
from quizcore.api.generate import router as generate_router
from quizcore.api.rate_limits import admin_router as rate_limits_admin_router
from quizcore.api.rate_limits import router as rate_limits_router
from quizcore.api.scoring import router as scoring_router
from quizcore.config import Settings
from quizcore.core.rate_limiter import RateLimiter
from quizcore.errors import InvalidInputError

logger = logging.getLogger(__name__)


def run_cleanup(limiter: RateLimiter) -> int:
    """Scheduled job body: purge idle rate limit entries."""
    removed = limiter.cleanup()
    logger.info("scheduled_cleanup removed=%d active=%d", removed, len(limiter))
    return removed


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup: schedule the rate limiter cleanup job. Shutdown: stop it."""
    settings: Settings = app.state.settings
    interval = settings.quizcore_cleanup_interval_seconds

    scheduler = None
    if interval > 0:
        from apscheduler.schedulers.asyncio import AsyncIOScheduler
        from apscheduler.triggers.interval import IntervalTrigger

        scheduler = AsyncIOScheduler()
        scheduler.add_job(
            run_cleanup,
            trigger=IntervalTrigger(seconds=interval),
            kwargs={"limiter": app.state.rate_limiter},
            id="rate_limit_cleanup",
            name="Purge idle rate limit entries",
            replace_existing=True,
        )
        scheduler.start()
        logger.info("scheduler_started cleanup_interval=%ds", interval)
    else:
        logger.info("scheduler_disabled")
    app.state.scheduler = scheduler

    yield

    if scheduler is not None:
        scheduler.shutdown(wait=False)
        logger.info("scheduler_stopped")


async def _invalid_input_handler(request: Request, exc: InvalidInputError) -> JSONResponse:
    logger.info("invalid_input path=%s error=%s", request.url.path, exc.message)
    return JSONResponse(
        status_code=422,
        content={"detail": exc.message, "errors": exc.errors},
    )


def create_app(
    settings: Settings | None = None,
    rate_limiter: RateLimiter | None = None,
    generator: ContentGenerator | None = None,
) -> FastAPI:
    """Create and configure the quizcore FastAPI application.

    Services are built from settings unless passed in; tests inject a
    limiter with a fake clock and a generator with a mocked client.
    """
    settings = settings or Settings()

    logging.basicConfig(
        level=getattr(logging, settings.quizcore_log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    app = FastAPI(
        title="quizcore",
        version="0.1.0",
        description="Quiz scoring, rank progression, and tiered rate limiting",
        docs_url="/docs" if settings.quizcore_env != "production" else None,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.rate_limiter = rate_limiter or RateLimiter(
        burst_window=settings.burst_window,
        inactivity_ttl=settings.inactivity_ttl,
    )
    app.state.generator = generator or ContentGenerator.from_settings(settings)

    app.add_exception_handler(InvalidInputError, _invalid_input_handler)

    app.include_router(scoring_router)
    app.include_router(rate_limits_router)
    app.include_router(rate_limits_admin_router)
    app.include_router(generate_router)

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {
            "status": "ok",
            "env": settings.quizcore_env,
            "generation": "enabled" if app.state.generator.enabled else "disabled",
        }

    return app


def serve() -> None:
    """Console entry point: run the app under uvicorn."""
    import os

    import uvicorn

    uvicorn.run(
        "quizcore.main:create_app",
        factory=True,
        host=os.environ.get("HOST", "127.0.0.1"),
        port=int(os.environ.get("PORT", "8000")),
    )
