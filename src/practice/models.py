"""
Data classes for questions, answers and user statistics.

Persisted JSON uses camelCase keys. Readers also accept the snake_case keys
and full ISO timestamps written by the first version of the app.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import date, datetime
from typing import Any

from .clock import canonical_date, parse_date
from .errors import MalformedRecordError


def _pick(data: dict, camel: str, snake: str, default: Any = None) -> Any:
    if camel in data:
        return data[camel]
    return data.get(snake, default)


@dataclass(frozen=True)
class Question:
    """The question shown for one calendar day."""

    id: str
    text: str
    created_at: datetime

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "text": self.text,
            "createdAt": self.created_at.isoformat(),
        }


@dataclass(frozen=True)
class Answer:
    """A single accepted submission. Never mutated once created."""

    id: str
    question_id: str
    text: str
    feedback: str
    created_at: datetime
    score: float | None = None

    @property
    def day(self) -> date:
        """Calendar day the answer was recorded on (in the recording clock's zone)."""
        return self.created_at.date()

    def to_dict(self) -> dict:
        data = {
            "id": self.id,
            "questionId": self.question_id,
            "text": self.text,
            "feedback": self.feedback,
            "createdAt": self.created_at.isoformat(),
        }
        if self.score is not None:
            data["score"] = self.score
        return data

    @classmethod
    def from_dict(cls, data: dict) -> Answer:
        """Create from a persisted dictionary."""
        try:
            score = data.get("score")
            return cls(
                id=str(data["id"]),
                question_id=str(_pick(data, "questionId", "question_id")),
                text=str(_pick(data, "text", "answer_text")),
                feedback=str(data.get("feedback", "")),
                created_at=datetime.fromisoformat(
                    str(_pick(data, "createdAt", "created_at")).replace("Z", "+00:00")
                ),
                score=float(score) if score is not None else None,
            )
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise MalformedRecordError("answerHistory", str(e)) from e


@dataclass(frozen=True)
class UserStats:
    """Aggregate statistics for one user."""

    current_streak: int = 0
    longest_streak: int = 0
    total_answers: int = 0
    average_score: float = 0.0
    last_answer_date: date | None = None
    scored_answers: int = 0

    @property
    def last_answer_key(self) -> str | None:
        """Canonical string of the last answer date, if any."""
        if self.last_answer_date is None:
            return None
        return canonical_date(self.last_answer_date)

    def evolve(self, **changes: Any) -> UserStats:
        """Return a copy with the given fields replaced."""
        return replace(self, **changes)

    def to_dict(self) -> dict:
        data: dict[str, Any] = {
            "currentStreak": self.current_streak,
            "longestStreak": self.longest_streak,
            "totalAnswers": self.total_answers,
            "averageScore": self.average_score,
        }
        if self.last_answer_date is not None:
            data["lastAnswerDate"] = canonical_date(self.last_answer_date)
        if self.scored_answers:
            data["scoredAnswers"] = self.scored_answers
        return data

    @classmethod
    def from_dict(cls, data: dict) -> UserStats:
        """
        Create from a persisted dictionary.

        Raises:
            MalformedRecordError: If a field is missing, mistyped or out of range
        """
        if not isinstance(data, dict):
            raise MalformedRecordError("userStats", f"expected object, got {type(data).__name__}")

        try:
            raw_last = _pick(data, "lastAnswerDate", "last_answer_date")
            stats = cls(
                current_streak=int(_pick(data, "currentStreak", "current_streak", 0)),
                longest_streak=int(_pick(data, "longestStreak", "longest_streak", 0)),
                total_answers=int(_pick(data, "totalAnswers", "total_answers", 0)),
                average_score=float(_pick(data, "averageScore", "average_score", 0.0)),
                last_answer_date=parse_date(str(raw_last)) if raw_last else None,
                scored_answers=int(_pick(data, "scoredAnswers", "scored_answers", 0)),
            )
        except (TypeError, ValueError) as e:
            raise MalformedRecordError("userStats", str(e)) from e

        if min(stats.current_streak, stats.longest_streak, stats.total_answers, stats.scored_answers) < 0:
            raise MalformedRecordError("userStats", "negative counter")
        if not 0 <= stats.average_score <= 100:
            raise MalformedRecordError("userStats", f"average score {stats.average_score} out of range")
        return stats
