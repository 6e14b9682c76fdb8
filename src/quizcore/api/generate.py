"""Rate-limited content generation: POST /api/generate.

Flow: resolve the caller's tier (``caller_tier``; a claimed tier needs the
admin token), refuse with 429 when the hourly quota or the burst guard says
no, generate, then record the request and its token count. Failed
generations are not counted.

The check and the record are separate calls with the LLM request between
them, so two concurrent requests from one user can both pass the check.
That overrun is bounded by the concurrency of a single user and accepted
here; ``RateLimiter.acquire`` exists for callers that need a hard cap.
"""

from __future__ import annotations

import logging
import math
from datetime import datetime
from typing import Annotated

from fastapi import APIRouter, Header, HTTPException, Response
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from quizcore.ai.usage import TokenUsage, compute_cost
from quizcore.api.deps import CallerTierDep, GeneratorDep, RateLimiterDep
from quizcore.core.rate_limiter import RateLimiter
from quizcore.errors import GenerationError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["generate"])


class GenerateRequest(BaseModel):
    prompt: str = Field(min_length=1, max_length=5000)
    context: str | None = Field(default=None, max_length=2000)
    max_tokens: int | None = Field(default=None, ge=1, le=4000)


class GenerateUsage(BaseModel):
    input_tokens: int
    output_tokens: int
    total_tokens: int


class GenerateResponse(BaseModel):
    success: bool = True
    content: str
    model: str
    usage: GenerateUsage


def retry_after_seconds(reset_time: str, now: datetime) -> int:
    """Whole seconds from ``now`` until ``reset_time``, never negative."""
    delta = datetime.fromisoformat(reset_time) - now
    return max(0, math.ceil(delta.total_seconds()))


def _too_many_requests(
    limiter: RateLimiter, user_id: str, tier: str, reset_time: str, reason: str
) -> JSONResponse:
    headers = limiter.get_rate_limit_headers(user_id, tier)
    retry_after = retry_after_seconds(reset_time, limiter.now())
    headers["Retry-After"] = str(retry_after)
    return JSONResponse(
        status_code=429,
        headers=headers,
        content={
            "success": False,
            "error": reason,
            "reset_time": reset_time,
            "retry_after": retry_after,
        },
    )


@router.post(
    "/generate",
    response_model=GenerateResponse,
    responses={429: {"description": "Rate limit exceeded"}},
)
async def generate(
    body: GenerateRequest,
    response: Response,
    limiter: RateLimiterDep,
    generator: GeneratorDep,
    x_user_id: Annotated[str, Header(min_length=1, max_length=200)],
    tier: CallerTierDep,
) -> GenerateResponse | JSONResponse:
    """Generate content for a user, charging the request against their tier quota."""
    check = limiter.check_limit(x_user_id, tier)
    if not check.allowed:
        return _too_many_requests(
            limiter, x_user_id, tier, check.reset_time, "Hourly request limit exceeded"
        )
    if not limiter.check_burst_limit(x_user_id, tier):
        return _too_many_requests(
            limiter, x_user_id, tier, check.reset_time, "Too many requests in a short period"
        )

    try:
        result = await generator.generate_content(
            body.prompt, context=body.context, max_tokens=body.max_tokens
        )
    except GenerationError as e:
        raise HTTPException(status_code=502, detail=str(e)) from e

    limiter.record_usage(x_user_id, tokens_used=result.total_tokens, tier=tier)
    response.headers.update(limiter.get_rate_limit_headers(x_user_id, tier))

    logger.info(
        "generate user=%s tier=%s tokens=%d cost_usd=%.6f",
        x_user_id,
        tier,
        result.total_tokens,
        compute_cost(result.model, TokenUsage(result.input_tokens, result.output_tokens)),
    )
    return GenerateResponse(
        content=result.text,
        model=result.model,
        usage=GenerateUsage(
            input_tokens=result.input_tokens,
            output_tokens=result.output_tokens,
            total_tokens=result.total_tokens,
        ),
    )
