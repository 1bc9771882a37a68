"""
Question pool and per-day question selection.

The pool is a fixed, ordered list of question texts supplied at startup.
Selection is a pure function of the calendar date and the pool, so "today's
question" never needs to be stored.
"""

from __future__ import annotations

import json
from collections.abc import Sequence
from datetime import date, datetime, time
from pathlib import Path

from loguru import logger

from .clock import canonical_date
from .errors import EmptyPoolError
from .models import Question

DEFAULT_QUESTIONS: tuple[str, ...] = (
    "Describe a challenging situation you faced at work and how you overcame it. "
    "What did you learn from this experience?",
    "What are your career goals for the next five years, and what steps are you "
    "taking to achieve them?",
    "How do you handle stress and pressure in a professional environment? "
    "Provide specific examples.",
    "Describe a time when you had to work with a difficult colleague or client. "
    "How did you manage the situation?",
    "What skills do you think are most important for success in your field, and "
    "how are you developing them?",
)


class QuestionPool(Sequence[str]):
    """Immutable ordered sequence of candidate question texts."""

    def __init__(self, questions: Sequence[str] = DEFAULT_QUESTIONS):
        self._questions = tuple(q.strip() for q in questions if q and q.strip())

    def __getitem__(self, index):
        return self._questions[index]

    def __len__(self) -> int:
        return len(self._questions)

    def __repr__(self) -> str:
        return f"QuestionPool({len(self)} questions)"

    @classmethod
    def from_file(cls, path: Path) -> QuestionPool:
        """
        Load a pool from disk.

        Args:
            path: A .json file holding a list of strings (or objects with a
                "text"/"question" key), or a text file with one question per line

        Returns:
            QuestionPool in file order
        """
        raw = path.read_text(encoding="utf-8")

        if path.suffix.lower() == ".json":
            items = json.loads(raw)
            questions = [
                item if isinstance(item, str) else item.get("text") or item.get("question", "")
                for item in items
            ]
        else:
            questions = [line for line in raw.splitlines() if not line.lstrip().startswith("#")]

        pool = cls(questions)
        logger.debug(f"Loaded {len(pool)} questions from {path}")
        return pool


def question_index(day: date, pool_size: int) -> int:
    """Index of the day's question: sum of character codes of the date string mod pool size."""
    return sum(ord(ch) for ch in canonical_date(day)) % pool_size


def select_question(day: date, pool: Sequence[str]) -> Question:
    """
    Map a calendar date to exactly one question.

    Args:
        day: Calendar date to select for
        pool: Ordered question texts

    Returns:
        Question whose id is derived from the date ("daily-YYYY-MM-DD")

    Raises:
        EmptyPoolError: If the pool has no questions
    """
    if len(pool) == 0:
        raise EmptyPoolError("Question pool is empty; no daily question can be served")

    key = canonical_date(day)
    return Question(
        id=f"daily-{key}",
        text=pool[question_index(day, len(pool))],
        created_at=datetime.combine(day, time.min),
    )
