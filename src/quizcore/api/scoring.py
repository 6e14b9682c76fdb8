"""Scoring API: per-question scores, final session scores, ranks, and summaries."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Query

from quizcore.core.scoring import (
    calculate_final_score,
    calculate_question_score,
    generate_score_summary,
    get_score_rank,
)
from quizcore.models.scoring import (
    FinalScoreResult,
    GameSessionData,
    QuestionScoreInput,
    RankResult,
    ScoreBreakdown,
    ScoreSummary,
)

router = APIRouter(prefix="/api/score", tags=["score"])


@router.post("/question", response_model=ScoreBreakdown)
async def score_question(body: QuestionScoreInput) -> ScoreBreakdown:
    return calculate_question_score(body)


@router.post("/final", response_model=FinalScoreResult)
async def score_session(body: GameSessionData) -> FinalScoreResult:
    """Score a finished game: per-question totals plus performance bonuses."""
    return calculate_final_score(body)


@router.post("/summary", response_model=ScoreSummary)
async def summarize_session(body: GameSessionData) -> ScoreSummary:
    """Score a finished game and return the results-screen summary in one call."""
    return generate_score_summary(calculate_final_score(body))


@router.get("/rank", response_model=RankResult)
async def rank_for_score(score: Annotated[float, Query(ge=0)]) -> RankResult:
    """Rank and progress toward the next rank for a score."""
    return get_score_rank(int(score) if score.is_integer() else score)
