"""Scoring models: per-question input, breakdowns, session results, ranks, achievements.

All inputs are validated on construction. Invalid values (negative times,
a zero time limit, unknown difficulty, NaN) are rejected rather than being
allowed to flow into the arithmetic.
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

Difficulty = Literal["easy", "medium", "hard"]

Rarity = Literal["common", "rare", "epic", "legendary"]


class QuestionScoreInput(BaseModel):
    """Timing, difficulty, and correctness for one answered question."""

    model_config = ConfigDict(frozen=True, allow_inf_nan=False)

    time_remaining: float = Field(default=0, ge=0)
    difficulty: Difficulty = "easy"
    streak: int = Field(default=0, ge=0)
    total_time: float = Field(default=30, ge=0)
    question_time_limit: float = Field(default=30, gt=0)
    is_correct: bool = False

    @model_validator(mode="after")
    def _time_remaining_within_limit(self) -> QuestionScoreInput:
        if self.time_remaining > self.question_time_limit:
            msg = (
                f"time_remaining ({self.time_remaining}) cannot exceed "
                f"question_time_limit ({self.question_time_limit})"
            )
            raise ValueError(msg)
        return self


class ScoreBreakdown(BaseModel):
    """Score for a single question. ``multiplier`` is only set for correct answers."""

    model_config = ConfigDict(frozen=True)

    total: int = Field(ge=0)
    base: int = Field(default=0, ge=0)
    time_bonus: int = Field(default=0, ge=0)
    difficulty_bonus: int = Field(default=0, ge=0)
    streak_bonus: int = Field(default=0, ge=0)
    speed_bonus: int = Field(default=0, ge=0)
    multiplier: float | None = None


class GameSessionData(BaseModel):
    """Everything recorded over one game, supplied at game end."""

    model_config = ConfigDict(frozen=True, allow_inf_nan=False)

    questions: list[QuestionScoreInput] = Field(default_factory=list)
    total_questions: int = Field(default=0, ge=0)
    correct_answers: int = Field(default=0, ge=0)
    total_time: float = Field(default=0, ge=0)
    difficulty: Difficulty = "easy"
    perfect_streak: int = Field(default=0, ge=0)

    @model_validator(mode="after")
    def _correct_within_total(self) -> GameSessionData:
        if self.correct_answers > self.total_questions:
            msg = (
                f"correct_answers ({self.correct_answers}) cannot exceed "
                f"total_questions ({self.total_questions})"
            )
            raise ValueError(msg)
        return self


class PerformanceBonuses(BaseModel):
    """Session-level bonuses awarded on top of the per-question totals."""

    perfect_game: int = 0
    speed_completion: int = 0
    accuracy: int = 0
    long_streak: int = 0
    total: int = 0


class FinalBreakdown(BaseModel):
    """Per-category totals across a session, for display."""

    base_score: int = 0
    time_bonus: int = 0
    difficulty_bonus: int = 0
    streak_bonus: int = 0
    speed_bonus: int = 0
    performance_bonuses: PerformanceBonuses = Field(default_factory=PerformanceBonuses)


class SessionStats(BaseModel):
    accuracy: float = Field(ge=0, le=100)
    average_time: float = Field(ge=0)
    perfect_streak: int = Field(ge=0)
    difficulty: Difficulty


class FinalScoreResult(BaseModel):
    """Final score for a session with its breakdown and rounded stats."""

    final_score: int = Field(ge=0)
    breakdown: FinalBreakdown
    stats: SessionStats


class RankProgress(BaseModel):
    """Progress from the current rank toward the next one up.

    ``next_rank`` is None at the top of the ladder.
    """

    percentage: int = Field(ge=0, le=100)
    points_to_next: int | float
    next_rank: str | None = None


class RankResult(BaseModel):
    name: str
    min: int
    color: str
    icon: str
    score: int | float
    progress: RankProgress


class Achievement(BaseModel):
    """An achievement earned by a finished session."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    description: str
    icon: str = ""
    rarity: Rarity


class DisplayText(BaseModel):
    score: str
    accuracy: str
    average_time: str
    rank: str


class ScoreSummary(BaseModel):
    """Everything the results screen needs, pre-formatted for display."""

    score: int
    rank: RankResult
    achievements: list[Achievement] = Field(default_factory=list)
    breakdown: FinalBreakdown
    stats: SessionStats
    display_text: DisplayText
