"""
Scoring for accepted words.
"""
from dataclasses import dataclass

from shared.constants import MAX_TIME_BONUS, STREAK_BONUS_STEP, STREAK_BONUS_POINTS


@dataclass
class ScoreBreakdown:
    """Points awarded for one word."""
    base: int
    time_bonus: int
    streak_bonus: int = 0

    @property
    def total(self) -> int:
        return self.base + self.time_bonus + self.streak_bonus

    def to_dict(self) -> dict:
        return {
            "base": self.base,
            "time_bonus": self.time_bonus,
            "streak_bonus": self.streak_bonus,
            "total": self.total,
        }


def time_bonus(time_taken_ms: int, round_time_seconds: int) -> int:
    """
    Bonus for answering quickly, 0 to MAX_TIME_BONUS.

    ceil(remaining / budget * 5), computed in integers. Zero or negative
    elapsed time earns the full bonus, anything past the budget earns none.
    """
    budget_ms = round_time_seconds * 1000
    if budget_ms <= 0:
        return 0
    if time_taken_ms <= 0:
        return MAX_TIME_BONUS

    remaining = budget_ms - time_taken_ms
    if remaining <= 0:
        return 0

    bonus = -(-remaining * MAX_TIME_BONUS // budget_ms)
    return max(0, min(MAX_TIME_BONUS, bonus))


def streak_bonus(streak: int) -> int:
    """Solo-mode bonus: 5 points for every 5 consecutive accepted words."""
    if streak <= 0:
        return 0
    return (streak // STREAK_BONUS_STEP) * STREAK_BONUS_POINTS


def score_word(
    length: int,
    time_taken_ms: int,
    round_time_seconds: int,
    streak: int | None = None
) -> ScoreBreakdown:
    """
    Score a valid word.

    Args:
        length: Length of the normalized word
        time_taken_ms: Time from turn start to submission
        round_time_seconds: Turn time budget
        streak: Current streak in solo mode; None in multiplayer

    Returns:
        ScoreBreakdown with base, time and streak components
    """
    return ScoreBreakdown(
        base=max(0, length),
        time_bonus=time_bonus(time_taken_ms, round_time_seconds),
        streak_bonus=streak_bonus(streak) if streak is not None else 0,
    )
