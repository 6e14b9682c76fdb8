"""Quiz scoring: per-question breakdowns, session totals, ranks, and achievements.

Per question: a fixed base, a bonus proportional to the time left on the
clock, a difficulty bonus, a step-wise streak bonus, and a tiered speed
bonus. Wrong answers earn nothing. At game end the per-question totals are
summed and four independent performance bonuses are added on top.

Every function here is pure. Inputs may be model instances or plain
mappings; mappings are validated and rejected with ``InvalidInputError``.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Callable, Mapping
from dataclasses import dataclass

from quizcore.errors import InvalidInputError, validate_input
from quizcore.models.scoring import (
    Achievement,
    Difficulty,
    DisplayText,
    FinalBreakdown,
    FinalScoreResult,
    GameSessionData,
    PerformanceBonuses,
    QuestionScoreInput,
    RankProgress,
    RankResult,
    Rarity,
    ScoreBreakdown,
    ScoreSummary,
    SessionStats,
)

logger = logging.getLogger(__name__)

BASE_POINTS = 100
MAX_TIME_BONUS = 50

DIFFICULTY_MULTIPLIERS: dict[Difficulty, float] = {
    "easy": 1.0,
    "medium": 1.5,
    "hard": 2.0,
}

# Streak must reach a multiple of the threshold; each full step adds the points.
STREAK_BONUS_THRESHOLD = 3
STREAK_BONUS_POINTS = 25

# (max seconds taken, bonus), checked in order; first match wins.
SPEED_BONUS_TIERS: list[tuple[float, int]] = [
    (10, 25),
    (20, 15),
]

PERFECT_GAME_BONUS = 500

# (average seconds per question strictly below, bonus)
SPEED_COMPLETION_TIERS: list[tuple[float, int]] = [
    (15, 200),
    (25, 100),
]

# (accuracy percentage at or above, bonus)
ACCURACY_TIERS: list[tuple[float, int]] = [
    (90, 300),
    (80, 200),
    (70, 100),
]

# (perfect streak at or above, bonus)
LONG_STREAK_TIERS: list[tuple[int, int]] = [
    (10, 400),
    (5, 200),
]


@dataclass(frozen=True)
class RankDefinition:
    """A named rung on the rank ladder, reached at ``min`` points."""

    name: str
    min: int
    color: str
    icon: str


# Highest first. The bottom rung has min=0 so every score has a rank.
RANK_LADDER: list[RankDefinition] = [
    RankDefinition(name="Cosmic Entity", min=5000, color="#FFD700", icon="\U0001f31f"),
    RankDefinition(name="Superhero", min=4000, color="#FF6B6B", icon="\U0001f9b8"),
    RankDefinition(name="Enhanced Human", min=3000, color="#4ECDC4", icon="\U0001f4aa"),
    RankDefinition(name="Skilled Fighter", min=2000, color="#45B7D1", icon="⚔️"),
    RankDefinition(name="Trainee", min=1000, color="#96CEB4", icon="\U0001f3af"),
    RankDefinition(name="Civilian", min=0, color="#FFEAA7", icon="\U0001f464"),
]


@dataclass(frozen=True)
class AchievementDefinition:
    """An achievement and the condition a finished session must meet to earn it."""

    id: str
    name: str
    description: str
    icon: str
    rarity: Rarity
    predicate: Callable[[FinalScoreResult], bool]

    def to_achievement(self) -> Achievement:
        return Achievement(
            id=self.id,
            name=self.name,
            description=self.description,
            icon=self.icon,
            rarity=self.rarity,
        )


ACHIEVEMENTS: list[AchievementDefinition] = [
    AchievementDefinition(
        id="perfect_accuracy",
        name="Flawless Victory",
        description="Answered all questions correctly",
        icon="\U0001f3af",
        rarity="legendary",
        predicate=lambda r: r.stats.accuracy == 100,
    ),
    AchievementDefinition(
        id="speed_demon",
        name="Lightning Fast",
        description="Average answer time under 10 seconds",
        icon="⚡",
        rarity="epic",
        predicate=lambda r: r.stats.average_time < 10,
    ),
    AchievementDefinition(
        id="streak_master",
        name="Unstoppable",
        description="Perfect streak of 10+ questions",
        icon="\U0001f525",
        rarity="epic",
        predicate=lambda r: r.stats.perfect_streak >= 10,
    ),
    AchievementDefinition(
        id="high_scorer",
        name="Cosmic Knowledge",
        description="Scored 5000+ points",
        icon="\U0001f31f",
        rarity="legendary",
        predicate=lambda r: r.final_score >= 5000,
    ),
]


def round_half_up(value: float, ndigits: int = 0) -> float:
    """Round halves away from zero for non-negative values (2.345 -> 2.35, 0.5 -> 1).

    Python's ``round`` uses banker's rounding, which would show 2.5 as 2.
    """
    factor = 10**ndigits
    return math.floor(value * factor + 0.5) / factor


def _tiered_bonus_at_most(value: float, tiers: list[tuple[float, int]]) -> int:
    for limit, bonus in tiers:
        if value <= limit:
            return bonus
    return 0


def _tiered_bonus_below(value: float, tiers: list[tuple[float, int]]) -> int:
    for limit, bonus in tiers:
        if value < limit:
            return bonus
    return 0


def _tiered_bonus_at_least(value: float, tiers: list[tuple[float, int]]) -> int:
    for floor, bonus in tiers:
        if value >= floor:
            return bonus
    return 0


def compute_time_bonus(time_remaining: float, question_time_limit: float) -> int:
    """Up to MAX_TIME_BONUS points, proportional to the fraction of time left."""
    return math.floor((time_remaining / question_time_limit) * MAX_TIME_BONUS)


def compute_difficulty_bonus(difficulty: Difficulty) -> int:
    """Difficulty scales the bonus only; the base is always BASE_POINTS."""
    return math.floor(BASE_POINTS * (DIFFICULTY_MULTIPLIERS[difficulty] - 1))


def compute_streak_bonus(streak: int) -> int:
    """0 for streaks 0-2, 25 for 3-5, 50 for 6-8, and so on."""
    if streak < STREAK_BONUS_THRESHOLD:
        return 0
    return (streak // STREAK_BONUS_THRESHOLD) * STREAK_BONUS_POINTS


def compute_speed_bonus(total_time: float) -> int:
    """25 for answers within 10 seconds, 15 within 20, otherwise nothing."""
    return _tiered_bonus_at_most(total_time, SPEED_BONUS_TIERS)


def calculate_question_score(question: QuestionScoreInput | Mapping) -> ScoreBreakdown:
    """Score one answered question.

    Incorrect answers get an all-zero breakdown; there is no partial credit.
    """
    question = validate_input(QuestionScoreInput, question, "question score input")

    if not question.is_correct:
        return ScoreBreakdown(total=0)

    time_bonus = compute_time_bonus(question.time_remaining, question.question_time_limit)
    difficulty_bonus = compute_difficulty_bonus(question.difficulty)
    streak_bonus = compute_streak_bonus(question.streak)
    speed_bonus = compute_speed_bonus(question.total_time)

    total = math.floor(BASE_POINTS + time_bonus + difficulty_bonus + streak_bonus + speed_bonus)
    return ScoreBreakdown(
        total=total,
        base=BASE_POINTS,
        time_bonus=time_bonus,
        difficulty_bonus=difficulty_bonus,
        streak_bonus=streak_bonus,
        speed_bonus=speed_bonus,
        multiplier=DIFFICULTY_MULTIPLIERS[question.difficulty],
    )


def compute_performance_bonuses(
    accuracy_percentage: float,
    average_time: float,
    perfect_streak: int,
) -> PerformanceBonuses:
    """Evaluate the four session bonuses independently and total them."""
    perfect_game = PERFECT_GAME_BONUS if accuracy_percentage == 100 else 0
    speed_completion = _tiered_bonus_below(average_time, SPEED_COMPLETION_TIERS)
    accuracy = _tiered_bonus_at_least(accuracy_percentage, ACCURACY_TIERS)
    long_streak = _tiered_bonus_at_least(perfect_streak, LONG_STREAK_TIERS)
    return PerformanceBonuses(
        perfect_game=perfect_game,
        speed_completion=speed_completion,
        accuracy=accuracy,
        long_streak=long_streak,
        total=perfect_game + speed_completion + accuracy + long_streak,
    )


def calculate_final_score(session: GameSessionData | Mapping) -> FinalScoreResult:
    """Sum per-question scores and add session performance bonuses.

    A session with no questions scores zero accuracy and zero average time
    rather than dividing by zero.
    """
    session = validate_input(GameSessionData, session, "game session data")

    question_total = 0
    time_bonus = 0
    difficulty_bonus = 0
    streak_bonus = 0
    speed_bonus = 0
    for question in session.questions:
        score = calculate_question_score(question)
        question_total += score.total
        time_bonus += score.time_bonus
        difficulty_bonus += score.difficulty_bonus
        streak_bonus += score.streak_bonus
        speed_bonus += score.speed_bonus

    if session.total_questions > 0:
        accuracy_percentage = session.correct_answers / session.total_questions * 100
        average_time = session.total_time / session.total_questions
    else:
        accuracy_percentage = 0.0
        average_time = 0.0

    bonuses = compute_performance_bonuses(
        accuracy_percentage, average_time, session.perfect_streak
    )
    final_score = question_total + bonuses.total

    logger.debug(
        "final_score questions=%d correct=%d question_total=%d bonuses=%d final=%d",
        session.total_questions,
        session.correct_answers,
        question_total,
        bonuses.total,
        final_score,
    )

    return FinalScoreResult(
        final_score=final_score,
        breakdown=FinalBreakdown(
            base_score=session.correct_answers * BASE_POINTS,
            time_bonus=time_bonus,
            difficulty_bonus=difficulty_bonus,
            streak_bonus=streak_bonus,
            speed_bonus=speed_bonus,
            performance_bonuses=bonuses,
        ),
        stats=SessionStats(
            accuracy=round_half_up(accuracy_percentage, 2),
            average_time=round_half_up(average_time, 2),
            perfect_streak=session.perfect_streak,
            difficulty=session.difficulty,
        ),
    )


def _check_score(score: object) -> int | float:
    if isinstance(score, bool) or not isinstance(score, (int, float)):
        raise InvalidInputError(f"Score must be a number, got {type(score).__name__}")
    if math.isnan(score) or math.isinf(score) or score < 0:
        raise InvalidInputError(f"Score must be a finite non-negative number, got {score}")
    return score


def _rank_index(score: int | float, ranks: list[RankDefinition]) -> int:
    for index, rank in enumerate(ranks):
        if score >= rank.min:
            return index
    # Only reachable with a custom ladder lacking a min=0 floor.
    return len(ranks) - 1


def calculate_rank_progress(
    score: int | float, ranks: list[RankDefinition] | None = None
) -> RankProgress:
    """How far ``score`` has climbed from its rank toward the next one up."""
    ranks = RANK_LADDER if ranks is None else ranks
    current_index = _rank_index(score, ranks)
    next_index = current_index - 1
    if next_index < 0:
        return RankProgress(percentage=100, points_to_next=0, next_rank=None)

    current = ranks[current_index]
    upcoming = ranks[next_index]
    points_needed = upcoming.min - current.min
    points_earned = score - current.min
    percentage = int(round_half_up(points_earned / points_needed * 100))
    return RankProgress(
        percentage=max(0, min(100, percentage)),
        points_to_next=max(0, upcoming.min - score),
        next_rank=upcoming.name,
    )


def get_score_rank(score: int | float) -> RankResult:
    """Find the highest rank whose threshold ``score`` meets, with progress to the next."""
    score = _check_score(score)
    rank = RANK_LADDER[_rank_index(score, RANK_LADDER)]
    return RankResult(
        name=rank.name,
        min=rank.min,
        color=rank.color,
        icon=rank.icon,
        score=score,
        progress=calculate_rank_progress(score, RANK_LADDER),
    )


def check_achievements(result: FinalScoreResult | Mapping) -> list[Achievement]:
    """Return every achievement whose condition the result meets, in definition order."""
    result = validate_input(FinalScoreResult, result, "final score result")
    return [a.to_achievement() for a in ACHIEVEMENTS if a.predicate(result)]


def format_number(value: int | float) -> str:
    """Render whole floats without a trailing ``.0`` (100.0 -> "100", 12.5 -> "12.5")."""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def generate_score_summary(result: FinalScoreResult | Mapping) -> ScoreSummary:
    """Combine rank, achievements, and display strings for the results screen."""
    result = validate_input(FinalScoreResult, result, "final score result")
    rank = get_score_rank(result.final_score)
    return ScoreSummary(
        score=result.final_score,
        rank=rank,
        achievements=check_achievements(result),
        breakdown=result.breakdown,
        stats=result.stats,
        display_text=DisplayText(
            score=f"{result.final_score:,}",
            accuracy=f"{format_number(result.stats.accuracy)}%",
            average_time=f"{format_number(result.stats.average_time)}s",
            rank=rank.name,
        ),
    )
