"""
AnswerSubmissionService: the only mutating operation of the practice engine.

submit() loads the user's stats, applies the streak transition and persists
the new answer together with the new stats. Submissions for one user are
serialized by an asyncio lock keyed by user id; storage calls run in a worker
thread so the event loop stays responsive while they are in flight.
"""

from __future__ import annotations

import asyncio
import uuid
import weakref
from collections.abc import Callable, Sequence
from enum import Enum
from typing import Any, TypeVar

from loguru import logger

from .clock import Clock, SystemClock, canonical_date
from .errors import (
    AlreadyAnsweredError,
    AnswerTooShortError,
    EmptyAnswerError,
    PersistenceError,
)
from .feedback import FeedbackProvider, FixedFeedbackProvider, HttpFeedbackProvider
from .invalidation import SUBMISSION_CHANNELS, InvalidationBus
from .models import Answer, Question, UserStats
from .progress import ProgressSummary, build_progress
from .question_pool import QuestionPool, select_question
from .record_store import SQLiteRecordStore
from .stats_store import StatsStore
from .streak_engine import IncrementalScorePolicy, ScorePolicy, StreakState, classify, policy_for, transition

T = TypeVar("T")


class DuplicatePolicy(str, Enum):
    """What a second submission on an already answered day does."""

    REJECT = "reject"  # raise AlreadyAnsweredError
    IDEMPOTENT = "idempotent"  # return the existing answer, change nothing


class AnswerSubmissionService:
    """
    Orchestrates question selection, streak transitions and persistence.

    Holds no user state of its own; everything lives in the StatsStore.
    """

    def __init__(
        self,
        store: StatsStore,
        pool: Sequence[str],
        clock: Clock | None = None,
        feedback: FeedbackProvider | None = None,
        invalidation: InvalidationBus | None = None,
        duplicate_policy: DuplicatePolicy = DuplicatePolicy.REJECT,
        min_answer_length: int = 0,
        score_policy: ScorePolicy | None = None,
        retry_attempts: int = 3,
        retry_delay: float = 0.1,
        id_factory: Callable[[], str] | None = None,
    ):
        """
        Args:
            store: Stats and history owner
            pool: Ordered question texts
            clock: Source of "now" (system local time by default)
            feedback: Feedback collaborator (fixed placeholder by default)
            invalidation: Bus notified after successful submissions
            duplicate_policy: Behaviour for a second answer on the same day
            min_answer_length: Minimum trimmed length (0 only rejects empty text)
            score_policy: Average score strategy (placeholder bumps by default, see policy_for)
            retry_attempts: Attempts for a failing store call (reads and writes)
            retry_delay: Base delay in seconds between attempts (doubles each time)
            id_factory: Answer id generator
        """
        self.store = store
        self.pool = pool
        self.clock = clock or SystemClock()
        self.feedback = feedback or FixedFeedbackProvider("Thanks for your answer!")
        self.invalidation = invalidation or InvalidationBus()
        self.duplicate_policy = DuplicatePolicy(duplicate_policy)
        self.min_answer_length = min_answer_length
        self.score_policy = score_policy or IncrementalScorePolicy()
        self.retry_attempts = max(1, retry_attempts)
        self.retry_delay = retry_delay
        self.id_factory = id_factory or (lambda: uuid.uuid4().hex)
        # Entries vanish once no submission holds or awaits the lock.
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = weakref.WeakValueDictionary()

    @classmethod
    def from_settings(cls, settings: Any, clock: Clock | None = None) -> AnswerSubmissionService:
        """Wire the default SQLite-backed service from application settings."""
        if settings.question_file:
            pool = QuestionPool.from_file(settings.question_file)
        else:
            pool = QuestionPool()

        if settings.feedback_url:
            feedback: FeedbackProvider = HttpFeedbackProvider(
                settings.feedback_url,
                fallback_text=settings.placeholder_feedback,
                timeout_ms=settings.feedback_timeout_ms,
            )
        else:
            feedback = FixedFeedbackProvider(settings.placeholder_feedback)

        score_policy = policy_for(bool(settings.feedback_url), delta=settings.score_delta)
        return cls(
            store=StatsStore(SQLiteRecordStore(settings.db_path), policy=score_policy),
            pool=pool,
            clock=clock or SystemClock(settings.timezone),
            feedback=feedback,
            duplicate_policy=DuplicatePolicy(settings.duplicate_policy),
            min_answer_length=settings.min_answer_length,
            score_policy=score_policy,
            retry_attempts=settings.persist_retry_attempts,
        )

    # =========================================================================
    # Reads
    # =========================================================================

    def todays_question(self) -> Question:
        """Question for the clock's current calendar day."""
        return select_question(self.clock.today(), self.pool)

    async def stats(self, user_id: str) -> UserStats:
        return await self._with_retry(f"loading stats for {user_id}", self.store.load, user_id)

    async def history(self, user_id: str, limit: int | None = None) -> list[Answer]:
        answers = await self._with_retry(f"loading history for {user_id}", self.store.history, user_id)
        return answers[:limit] if limit else answers

    async def progress(self, user_id: str) -> ProgressSummary:
        stats = await self.stats(user_id)
        return build_progress(stats, self.clock.today())

    # =========================================================================
    # Submission
    # =========================================================================

    def validate(self, answer_text: str) -> str:
        """
        Check answer text and return it trimmed.

        Raises:
            EmptyAnswerError: Nothing left after trimming
            AnswerTooShortError: Shorter than min_answer_length
        """
        text = (answer_text or "").strip()
        if not text:
            raise EmptyAnswerError("Answer cannot be empty")
        if len(text) < self.min_answer_length:
            raise AnswerTooShortError(len(text), self.min_answer_length)
        return text

    def _lock_for(self, user_id: str) -> asyncio.Lock:
        lock = self._locks.get(user_id)
        if lock is None:
            lock = self._locks[user_id] = asyncio.Lock()
        return lock

    async def submit(self, user_id: str, question_id: str, answer_text: str) -> Answer:
        """
        Accept today's answer for a user.

        Args:
            user_id: Submitting user
            question_id: Id of the question being answered (normally "daily-YYYY-MM-DD")
            answer_text: Free-text answer

        Returns:
            The recorded Answer (or the existing one under the idempotent policy)

        Raises:
            EmptyAnswerError / AnswerTooShortError: Invalid text, nothing is written
            AlreadyAnsweredError: Already answered today under the reject policy
            PersistenceError: Storage still failing after all retry attempts
        """
        text = self.validate(answer_text)

        async with self._lock_for(user_id):
            now = self.clock.now()
            today = now.date()
            day_key = canonical_date(today)

            stats = await self._with_retry(f"loading stats for {user_id}", self.store.load, user_id)

            if classify(stats, today) is StreakState.ANSWERED_TODAY:
                existing = await self._with_retry(
                    f"looking up {day_key} answer for {user_id}", self.store.find_answer, user_id, day_key
                )
                if self.duplicate_policy is DuplicatePolicy.IDEMPOTENT and existing is not None:
                    logger.info(f"{user_id} already answered {day_key}; returning existing answer")
                    return existing
                raise AlreadyAnsweredError(day_key, existing)

            question = select_question(today, self.pool)
            if question_id != question.id:
                logger.warning(f"Answer for {question_id} submitted on {day_key}; counting it for today")

            result = await self.feedback.evaluate(question, text)
            answer = Answer(
                id=self.id_factory(),
                question_id=question_id,
                text=text,
                feedback=result.feedback,
                created_at=now,
                score=result.score,
            )
            new_stats = transition(stats, today, score=result.score, policy=self.score_policy)

            await self._with_retry(
                f"persisting answer for {user_id}", self.store.persist, user_id, new_stats, answer
            )

        logger.info(
            f"Accepted answer {answer.id} for {user_id} on {day_key} "
            f"(streak {new_stats.current_streak}, total {new_stats.total_answers})"
        )
        self.invalidation.invalidate(SUBMISSION_CHANNELS, user_id)
        return answer

    async def _with_retry(self, action: str, operation: Callable[..., T], *args: Any) -> T:
        """
        Run a blocking store call in a worker thread, retrying PersistenceError.

        Every store operation is safe to repeat: loads only write defaults or
        reconciled snapshots, and persist() drops a duplicate answer id.
        """
        last_error: PersistenceError | None = None

        for attempt in range(self.retry_attempts):
            try:
                return await asyncio.to_thread(operation, *args)
            except PersistenceError as e:
                last_error = e
                logger.warning(f"Failed {action} (attempt {attempt + 1}/{self.retry_attempts}): {e}")
                if attempt < self.retry_attempts - 1:
                    await asyncio.sleep(self.retry_delay * (2 ** attempt))

        logger.error(f"Giving up {action} after {self.retry_attempts} attempts")
        raise last_error

    async def close(self) -> None:
        """Release the feedback client and the storage connection."""
        await self.feedback.close()
        self.store.close()
