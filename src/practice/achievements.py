"""Achievement badges unlocked by answer counts and streak length."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date

from .models import UserStats
from .streak_engine import effective_streak


@dataclass(frozen=True)
class Achievement:
    key: str
    icon: str
    title: str
    description: str
    min_answers: int = 0
    min_streak: int = 0

    def is_unlocked(self, total_answers: int, streak: int) -> bool:
        return total_answers >= self.min_answers and streak >= self.min_streak


ACHIEVEMENTS: tuple[Achievement, ...] = (
    Achievement("first_answer", "🎯", "First Answer", "Answer your first daily question", min_answers=1),
    Achievement("streak_3", "🔥", "3-Day Streak", "Answer questions 3 days in a row", min_streak=3),
    Achievement("streak_7", "⭐", "Week Warrior", "Maintain a 7-day streak", min_streak=7),
    Achievement("answers_10", "📚", "Dedicated Learner", "Answer 10 questions", min_answers=10),
)


def evaluate_achievements(stats: UserStats, today: date) -> list[tuple[Achievement, bool]]:
    """
    Pair every achievement with its unlocked flag.

    Streak badges use the effective streak, so they lock again once a
    streak lapses.
    """
    streak = effective_streak(stats, today)
    return [(a, a.is_unlocked(stats.total_answers, streak)) for a in ACHIEVEMENTS]
