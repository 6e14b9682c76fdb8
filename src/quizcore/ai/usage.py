"""Token accounting for Anthropic responses.

``extract_usage()`` turns an SDK response into a ``TokenUsage``; its
``total`` is what the generate route charges against the caller's
rate-limit token counter. ``compute_cost()`` gives a dollar estimate for
the log line.
"""

from __future__ import annotations

import time
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from dataclasses import dataclass

# Pricing per million tokens (USD). Update when prices change.
PRICING: dict[str, dict[str, float]] = {
    "claude-sonnet-4-5-20250929": {"input_per_mtok": 3.00, "output_per_mtok": 15.00},
    "claude-haiku-4-5-20251001": {"input_per_mtok": 0.80, "output_per_mtok": 4.00},
    "claude-opus-4-1-20250805": {"input_per_mtok": 15.00, "output_per_mtok": 75.00},
}

_DEFAULT_PRICING = {"input_per_mtok": 3.00, "output_per_mtok": 15.00}


@dataclass(frozen=True)
class TokenUsage:
    input_tokens: int = 0
    output_tokens: int = 0

    @property
    def total(self) -> int:
        return self.input_tokens + self.output_tokens


def compute_cost(model: str, usage: TokenUsage) -> float:
    """Estimated cost in USD for one call. Unknown models use the default rates."""
    rates = PRICING.get(model, _DEFAULT_PRICING)
    cost = (
        usage.input_tokens * rates["input_per_mtok"]
        + usage.output_tokens * rates["output_per_mtok"]
    ) / 1_000_000
    return round(cost, 8)


def extract_usage(response: object) -> TokenUsage:
    """Read token counts off an Anthropic ``Message``; zeros when absent."""
    usage = getattr(response, "usage", None)
    if usage is None:
        return TokenUsage()
    return TokenUsage(
        input_tokens=getattr(usage, "input_tokens", 0) or 0,
        output_tokens=getattr(usage, "output_tokens", 0) or 0,
    )


@asynccontextmanager
async def track_latency() -> AsyncGenerator[dict[str, float], None]:
    """Yield a dict whose ``latency_ms`` is filled in on exit.

    Usage::

        async with track_latency() as timing:
            response = await client.messages.create(...)
        latency = timing["latency_ms"]
    """
    timing: dict[str, float] = {"latency_ms": 0.0}
    start = time.monotonic()
    try:
        yield timing
    finally:
        timing["latency_ms"] = (time.monotonic() - start) * 1000
