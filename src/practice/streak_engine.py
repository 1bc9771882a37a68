"""
Streak engine: the statistics state machine.

States are derived from the stored snapshot and today's date, never stored:

    NEVER_ANSWERED      no answer yet
    ANSWERED_TODAY      last answer is today
    ANSWERED_YESTERDAY  last answer is exactly one calendar day ago
    LAPSED              last answer is two or more calendar days ago

All comparisons are on ``datetime.date`` values, so time of day, DST and
timezone changes within a session cannot shift a streak.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date, timedelta
from enum import Enum
from typing import Protocol

from .models import Answer, UserStats


class StreakState(str, Enum):
    NEVER_ANSWERED = "never_answered"
    ANSWERED_TODAY = "answered_today"
    ANSWERED_YESTERDAY = "answered_yesterday"
    LAPSED = "lapsed"


def classify(stats: UserStats, today: date) -> StreakState:
    """Derive the streak state of a snapshot relative to today."""
    last = stats.last_answer_date
    if last is None or stats.total_answers == 0:
        return StreakState.NEVER_ANSWERED
    if last == today:
        return StreakState.ANSWERED_TODAY
    if last == today - timedelta(days=1):
        return StreakState.ANSWERED_YESTERDAY
    return StreakState.LAPSED


def effective_streak(stats: UserStats, today: date) -> int:
    """
    Streak as it should be displayed today.

    The stored streak is not decayed when days are missed; readers call this
    to see 0 once the streak has lapsed.
    """
    if classify(stats, today) in (StreakState.ANSWERED_TODAY, StreakState.ANSWERED_YESTERDAY):
        return stats.current_streak
    return 0


# =============================================================================
# Score Policies
# =============================================================================


class ScorePolicy(Protocol):
    """Computes the next average score for an accepted answer."""

    def next_average(self, prev: UserStats, score: float | None) -> float: ...


@dataclass
class IncrementalScorePolicy:
    """
    Placeholder policy used while no scorer is wired.

    Bumps the average by a fixed delta, capped at 100. Scores are ignored:
    the value it keeps is a progress gauge, not a mean.
    """

    delta: float = 5.0

    def next_average(self, prev: UserStats, score: float | None) -> float:
        return min(100.0, prev.average_score + self.delta)


class RunningMeanScorePolicy:
    """Average of all scored answers; unscored answers leave it unchanged."""

    def next_average(self, prev: UserStats, score: float | None) -> float:
        if score is None:
            return prev.average_score
        score = max(0.0, min(100.0, score))
        count = prev.scored_answers + 1
        return round(prev.average_score + (score - prev.average_score) / count, 2)


def policy_for(scorer_wired: bool, delta: float = 5.0) -> ScorePolicy:
    """Running mean when a scorer supplies real scores, placeholder bumps otherwise."""
    if scorer_wired:
        return RunningMeanScorePolicy()
    return IncrementalScorePolicy(delta=delta)


# =============================================================================
# Transition
# =============================================================================


def transition(
    prev: UserStats,
    today: date,
    score: float | None = None,
    policy: ScorePolicy | None = None,
) -> UserStats:
    """
    Compute the snapshot after accepting one answer today.

    Args:
        prev: Snapshot before the answer
        today: Calendar day of the submission
        score: Optional score (0-100) from the scoring collaborator
        policy: Average score strategy (IncrementalScorePolicy by default)

    Returns:
        New UserStats. If the snapshot already records an answer today the
        same snapshot is returned, so a repeated call cannot double-count.
    """
    state = classify(prev, today)
    if state is StreakState.ANSWERED_TODAY:
        return prev

    if state is StreakState.ANSWERED_YESTERDAY:
        current = prev.current_streak + 1
    else:
        current = 1

    policy = policy or IncrementalScorePolicy()
    return UserStats(
        current_streak=current,
        longest_streak=max(prev.longest_streak, current),
        total_answers=prev.total_answers + 1,
        average_score=policy.next_average(prev, score),
        last_answer_date=today,
        scored_answers=prev.scored_answers + (1 if score is not None else 0),
    )


def replay(answers: Iterable[Answer], policy: ScorePolicy | None = None) -> UserStats:
    """
    Rebuild statistics from an answer history (any order).

    Used to reconcile stats after a crash left answers without a matching
    stats write. Answers on a day that already counted are skipped, exactly
    as transition() would.
    """
    stats = UserStats()
    for answer in sorted(answers, key=lambda a: a.created_at):
        stats = transition(stats, answer.day, score=answer.score, policy=policy)
    return stats
