"""Progress summary shown on the dashboard."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date

from .achievements import Achievement, evaluate_achievements
from .models import UserStats
from .streak_engine import StreakState, classify, effective_streak


@dataclass
class ProgressSummary:
    """Read-only view of a user's stats as of today."""

    today: date
    state: StreakState
    current_streak: int
    longest_streak: int
    total_answers: int
    average_score: int
    last_answer_date: date | None
    achievements: list[tuple[Achievement, bool]] = field(default_factory=list)

    @property
    def answered_today(self) -> bool:
        return self.state is StreakState.ANSWERED_TODAY

    @property
    def unlocked(self) -> list[Achievement]:
        return [a for a, ok in self.achievements if ok]


def build_progress(stats: UserStats, today: date) -> ProgressSummary:
    """Derive the dashboard summary; lapsed streaks show as 0."""
    return ProgressSummary(
        today=today,
        state=classify(stats, today),
        current_streak=effective_streak(stats, today),
        longest_streak=stats.longest_streak,
        total_answers=stats.total_answers,
        average_score=round(stats.average_score),
        last_answer_date=stats.last_answer_date,
        achievements=evaluate_achievements(stats, today),
    )
