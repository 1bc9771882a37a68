"""
Daily practice engine: one question per day, streaks and statistics.

Components:
- clock: Injectable source of the current calendar day
- question_pool: Question pool and deterministic per-day selection
- streak_engine: Pure statistics state machine
- record_store: Persistence port (in-memory and SQLite backends)
- stats_store: Stats and answer history ownership, reconciliation
- submission: AnswerSubmissionService, the only mutating operation
- invalidation: Refresh signals for cached views
- feedback: Feedback/scoring collaborators
- achievements, progress: Dashboard summaries
"""

from .achievements import ACHIEVEMENTS, Achievement, evaluate_achievements
from .clock import Clock, FixedClock, SystemClock, canonical_date
from .errors import (
    AlreadyAnsweredError,
    AnswerTooShortError,
    AnswerValidationError,
    EmptyAnswerError,
    EmptyPoolError,
    MalformedRecordError,
    PersistenceError,
    PracticeError,
)
from .feedback import Feedback, FixedFeedbackProvider, HttpFeedbackProvider
from .invalidation import Channel, InvalidationBus
from .models import Answer, Question, UserStats
from .progress import ProgressSummary, build_progress
from .question_pool import DEFAULT_QUESTIONS, QuestionPool, select_question
from .record_store import InMemoryRecordStore, SQLiteRecordStore
from .stats_store import StatsStore
from .streak_engine import (
    IncrementalScorePolicy,
    RunningMeanScorePolicy,
    StreakState,
    classify,
    effective_streak,
    policy_for,
    replay,
    transition,
)
from .submission import AnswerSubmissionService, DuplicatePolicy

__all__ = [
    # Models
    "Question",
    "Answer",
    "UserStats",
    # Clock
    "Clock",
    "SystemClock",
    "FixedClock",
    "canonical_date",
    # Questions
    "DEFAULT_QUESTIONS",
    "QuestionPool",
    "select_question",
    # Streaks
    "StreakState",
    "classify",
    "effective_streak",
    "transition",
    "replay",
    "IncrementalScorePolicy",
    "RunningMeanScorePolicy",
    "policy_for",
    # Persistence
    "InMemoryRecordStore",
    "SQLiteRecordStore",
    "StatsStore",
    # Submission
    "AnswerSubmissionService",
    "DuplicatePolicy",
    "Feedback",
    "FixedFeedbackProvider",
    "HttpFeedbackProvider",
    "Channel",
    "InvalidationBus",
    # Dashboard
    "ACHIEVEMENTS",
    "Achievement",
    "evaluate_achievements",
    "ProgressSummary",
    "build_progress",
    # Errors
    "PracticeError",
    "EmptyPoolError",
    "AnswerValidationError",
    "EmptyAnswerError",
    "AnswerTooShortError",
    "AlreadyAnsweredError",
    "PersistenceError",
    "MalformedRecordError",
]
