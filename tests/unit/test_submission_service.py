"""
Unit tests for AnswerSubmissionService.

Tests:
- Validation happens before any state is touched
- Reject and idempotent duplicate policies
- Streak progression across simulated days
- Invalidation signals only on success
- Retry of transient persistence failures
- Serialized concurrent submissions
"""

import asyncio
import gc
from datetime import date, datetime, timezone

import pytest

from src.practice import (
    AlreadyAnsweredError,
    AnswerTooShortError,
    Channel,
    DuplicatePolicy,
    EmptyAnswerError,
    Feedback,
    PersistenceError,
    RunningMeanScorePolicy,
    StatsStore,
    UserStats,
)
from src.practice.record_store import ANSWER_HISTORY, USER_STATS


class FlakyRecordStore:
    """Wraps a record store and fails the first N multi-record writes and the first N reads."""

    def __init__(self, inner, failures: int = 0, read_failures: int = 0):
        self.inner = inner
        self.failures = failures
        self.read_failures = read_failures
        self.write_attempts = 0
        self.read_attempts = 0
        self.closed = False

    def get(self, user_id, name):
        self.read_attempts += 1
        if self.read_attempts <= self.read_failures:
            raise PersistenceError("database is locked")
        return self.inner.get(user_id, name)

    def set(self, user_id, name, value):
        self.inner.set(user_id, name, value)

    def set_if_absent(self, user_id, name, value):
        return self.inner.set_if_absent(user_id, name, value)

    def set_many(self, user_id, records):
        self.write_attempts += 1
        if self.write_attempts <= self.failures:
            raise PersistenceError("disk I/O error")
        self.inner.set_many(user_id, records)

    def close(self):
        self.closed = True


class ScoringFeedback:
    """Feedback collaborator returning scores in order (None means the scorer was unavailable)."""

    def __init__(self, *scores: float | None):
        self.scores = list(scores)
        self.calls = 0
        self.closed = False

    async def evaluate(self, question, answer_text):
        score = self.scores[min(self.calls, len(self.scores) - 1)]
        self.calls += 1
        if score is None:
            return Feedback(feedback="Great response!")
        return Feedback(feedback=f"Scored {score}", score=score)

    async def close(self):
        self.closed = True


class TestValidation:
    """Tests for answer text validation."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("text", ["", "   ", "\n\t "])
    async def test_empty_answer_rejected_without_mutation(self, service, records, text):
        question = service.todays_question()

        with pytest.raises(EmptyAnswerError):
            await service.submit("alice", question.id, text)

        assert records.get("alice", USER_STATS) is None
        assert records.get("alice", ANSWER_HISTORY) is None

    @pytest.mark.asyncio
    async def test_min_length_enforced(self, make_service, records):
        service = make_service(min_answer_length=10)

        with pytest.raises(AnswerTooShortError) as exc_info:
            await service.submit("alice", service.todays_question().id, "  too short ")

        assert exc_info.value.length == 9
        assert records.get("alice", USER_STATS) is None

    @pytest.mark.asyncio
    async def test_answer_text_is_trimmed(self, service, sample_answer_text):
        answer = await service.submit("alice", service.todays_question().id, f"  {sample_answer_text}\n")

        assert answer.text == sample_answer_text


class TestSubmit:
    """Tests for the happy path."""

    @pytest.mark.asyncio
    async def test_first_submission(self, service, sample_answer_text):
        question = service.todays_question()

        answer = await service.submit("alice", question.id, sample_answer_text)
        stats = await service.stats("alice")

        assert answer.question_id == "daily-2024-03-10"
        assert answer.feedback == "Great response!"
        assert answer.day == date(2024, 3, 10)
        assert (stats.current_streak, stats.longest_streak, stats.total_answers) == (1, 1, 1)
        assert stats.average_score == 5.0
        assert await service.history("alice") == [answer]

    @pytest.mark.asyncio
    async def test_concrete_scenario_across_days(self, service, clock, sample_answer_text):
        """Day 1 -> {1,1,1}; day 2 -> {2,2,2}; skip day 3; day 4 -> {1,2,3}."""
        snapshots = []
        for advance in (0, 1, 2):
            clock.advance(days=advance)
            await service.submit("alice", service.todays_question().id, sample_answer_text)
            stats = await service.stats("alice")
            snapshots.append((stats.current_streak, stats.longest_streak, stats.total_answers))

        assert snapshots == [(1, 1, 1), (2, 2, 2), (1, 2, 3)]

    @pytest.mark.asyncio
    async def test_late_evening_and_early_morning_are_consecutive(self, service, clock, sample_answer_text):
        """23:50 and 00:10 the next day are one day apart even though only 20 minutes passed."""
        clock.set(datetime(2024, 3, 10, 23, 50, tzinfo=timezone.utc))
        await service.submit("alice", service.todays_question().id, sample_answer_text)

        clock.set(datetime(2024, 3, 11, 0, 10, tzinfo=timezone.utc))
        await service.submit("alice", service.todays_question().id, sample_answer_text)

        stats = await service.stats("alice")
        assert stats.current_streak == 2

    @pytest.mark.asyncio
    async def test_scorer_result_feeds_average(self, make_service, sample_answer_text):
        scorer = ScoringFeedback(80.0)
        service = make_service(feedback=scorer, score_policy=RunningMeanScorePolicy())

        answer = await service.submit("alice", service.todays_question().id, sample_answer_text)
        stats = await service.stats("alice")

        assert answer.score == 80.0
        assert answer.feedback == "Scored 80.0"
        assert stats.average_score == 80.0

    @pytest.mark.asyncio
    async def test_invalidation_channels_signalled(self, service, bus, sample_answer_text):
        seen = []
        for channel in Channel:
            bus.subscribe(channel, lambda ch, user: seen.append((ch, user)))

        await service.submit("alice", service.todays_question().id, sample_answer_text)

        assert seen == [
            (Channel.DAILY_QUESTION, "alice"),
            (Channel.USER_STATS, "alice"),
            (Channel.ANSWER_HISTORY, "alice"),
        ]

    @pytest.mark.asyncio
    async def test_failing_listener_does_not_break_submission(self, service, bus, sample_answer_text):
        def boom(channel, user):
            raise RuntimeError("view crashed")

        bus.subscribe(Channel.USER_STATS, boom)

        answer = await service.submit("alice", service.todays_question().id, sample_answer_text)

        assert answer.text == sample_answer_text


class TestDuplicatePolicy:
    """Second submission on the same calendar day."""

    @pytest.mark.asyncio
    async def test_reject_policy(self, service, bus, sample_answer_text):
        question = service.todays_question()
        first = await service.submit("alice", question.id, sample_answer_text)
        signals_after_first = len(bus.recent)

        with pytest.raises(AlreadyAnsweredError) as exc_info:
            await service.submit("alice", question.id, "A different answer entirely")

        stats = await service.stats("alice")
        assert exc_info.value.existing == first
        assert stats.total_answers == 1
        assert stats.current_streak == 1
        assert len(await service.history("alice")) == 1
        assert len(bus.recent) == signals_after_first

    @pytest.mark.asyncio
    async def test_idempotent_policy_returns_existing(self, make_service, sample_answer_text):
        service = make_service(duplicate_policy=DuplicatePolicy.IDEMPOTENT)
        question = service.todays_question()

        first = await service.submit("alice", question.id, sample_answer_text)
        second = await service.submit("alice", question.id, "Another answer on the same day")

        stats = await service.stats("alice")
        assert second == first
        assert stats.total_answers == 1
        assert stats.current_streak == 1

    def test_policy_accepts_string_value(self, make_service):
        assert make_service(duplicate_policy="idempotent").duplicate_policy is DuplicatePolicy.IDEMPOTENT

    @pytest.mark.asyncio
    async def test_answer_allowed_again_next_day(self, service, clock, sample_answer_text):
        await service.submit("alice", service.todays_question().id, sample_answer_text)
        clock.advance(days=1)

        await service.submit("alice", service.todays_question().id, sample_answer_text)

        assert (await service.stats("alice")).total_answers == 2

    @pytest.mark.asyncio
    async def test_concurrent_double_submit_counts_once(self, service, sample_answer_text):
        """Two in-flight submissions for one user are serialized; the second sees the first."""
        question = service.todays_question()

        results = await asyncio.gather(
            service.submit("alice", question.id, sample_answer_text),
            service.submit("alice", question.id, sample_answer_text),
            return_exceptions=True,
        )

        accepted = [r for r in results if not isinstance(r, Exception)]
        rejected = [r for r in results if isinstance(r, AlreadyAnsweredError)]
        assert len(accepted) == 1
        assert len(rejected) == 1
        assert (await service.stats("alice")).total_answers == 1


class TestPersistenceRetry:
    """Transient storage failures."""

    @pytest.mark.asyncio
    async def test_transient_failure_retried(self, make_service, records, sample_answer_text):
        flaky = FlakyRecordStore(records, failures=2)
        service = make_service(store=StatsStore(flaky), retry_attempts=3)

        await service.submit("alice", service.todays_question().id, sample_answer_text)

        assert flaky.write_attempts == 3
        assert (await service.stats("alice")).total_answers == 1

    @pytest.mark.asyncio
    async def test_exhausted_retries_surface_without_partial_write(
        self, make_service, records, bus, sample_answer_text
    ):
        flaky = FlakyRecordStore(records, failures=5)
        service = make_service(store=StatsStore(flaky), retry_attempts=2)

        with pytest.raises(PersistenceError):
            await service.submit("alice", service.todays_question().id, sample_answer_text)

        assert records.get("alice", ANSWER_HISTORY) is None
        assert UserStats.from_dict(records.get("alice", USER_STATS)).total_answers == 0
        assert len(bus.recent) == 0

    @pytest.mark.asyncio
    async def test_retry_after_failure_is_safe(self, make_service, records, sample_answer_text):
        """The user retries after a failed submit: exactly one answer lands."""
        flaky = FlakyRecordStore(records, failures=1)
        service = make_service(store=StatsStore(flaky), retry_attempts=1)
        question = service.todays_question()

        with pytest.raises(PersistenceError):
            await service.submit("alice", question.id, sample_answer_text)
        await service.submit("alice", question.id, sample_answer_text)

        stats = await service.stats("alice")
        assert stats.total_answers == 1
        assert len(await service.history("alice")) == 1


    @pytest.mark.asyncio
    async def test_transient_read_failure_retried(self, make_service, records, sample_answer_text):
        flaky = FlakyRecordStore(records, read_failures=1)
        service = make_service(store=StatsStore(flaky), retry_attempts=3)

        await service.submit("alice", service.todays_question().id, sample_answer_text)

        assert flaky.read_attempts > 1
        assert (await service.stats("alice")).total_answers == 1

    @pytest.mark.asyncio
    async def test_reads_retried_until_exhausted(self, make_service, records, sample_answer_text):
        flaky = FlakyRecordStore(records, read_failures=100)
        service = make_service(store=StatsStore(flaky), retry_attempts=2)

        with pytest.raises(PersistenceError):
            await service.submit("alice", service.todays_question().id, sample_answer_text)
        with pytest.raises(PersistenceError):
            await service.history("alice")

        assert records.get("alice", ANSWER_HISTORY) is None
        assert flaky.write_attempts == 0


class TestProgress:
    """Dashboard summary through the service."""

    @pytest.mark.asyncio
    async def test_progress_after_answer(self, service, sample_answer_text):
        await service.submit("alice", service.todays_question().id, sample_answer_text)

        progress = await service.progress("alice")

        assert progress.answered_today is True
        assert progress.current_streak == 1
        assert [a.key for a in progress.unlocked] == ["first_answer"]

    @pytest.mark.asyncio
    async def test_progress_shows_lapsed_streak_as_zero(self, service, clock, sample_answer_text):
        await service.submit("alice", service.todays_question().id, sample_answer_text)
        clock.advance(days=3)

        progress = await service.progress("alice")

        assert progress.current_streak == 0
        assert progress.longest_streak == 1
        assert progress.answered_today is False


class TestQuestionMismatch:
    """An answer sent with a stale question id."""

    @pytest.mark.asyncio
    async def test_stale_question_id_counts_for_today(self, service, clock, sample_answer_text):
        yesterdays_id = service.todays_question().id
        clock.advance(days=1)

        answer = await service.submit("alice", yesterdays_id, sample_answer_text)
        stats = await service.stats("alice")

        assert answer.question_id == "daily-2024-03-10"
        assert answer.day == date(2024, 3, 11)
        assert stats.last_answer_date == date(2024, 3, 11)
        assert stats.total_answers == 1


class TestScorerAverage:
    """Average score when a scorer is wired but sometimes unavailable."""

    @pytest.mark.asyncio
    async def test_unscored_answer_does_not_dilute_average(self, make_service, clock, sample_answer_text):
        scorer = ScoringFeedback(None, 80.0, None, 60.0)
        service = make_service(feedback=scorer, score_policy=RunningMeanScorePolicy())

        for day in range(4):
            if day:
                clock.advance(days=1)
            await service.submit("alice", service.todays_question().id, sample_answer_text)

        stats = await service.stats("alice")
        assert stats.total_answers == 4
        assert stats.scored_answers == 2
        assert stats.average_score == pytest.approx(70.0)
        assert stats.current_streak == 4

    @pytest.mark.asyncio
    async def test_fallback_first_then_real_score(self, make_service, clock, sample_answer_text):
        service = make_service(feedback=ScoringFeedback(None, 80.0), score_policy=RunningMeanScorePolicy())

        await service.submit("alice", service.todays_question().id, sample_answer_text)
        assert (await service.stats("alice")).average_score == 0.0

        clock.advance(days=1)
        await service.submit("alice", service.todays_question().id, sample_answer_text)
        assert (await service.stats("alice")).average_score == 80.0


class TestResources:
    """Cleanup of collaborators and per-user locks."""

    @pytest.mark.asyncio
    async def test_close_releases_feedback_and_storage(self, make_service, records):
        flaky = FlakyRecordStore(records)
        scorer = ScoringFeedback(50.0)
        service = make_service(store=StatsStore(flaky), feedback=scorer)

        await service.close()

        assert scorer.closed
        assert flaky.closed

    @pytest.mark.asyncio
    async def test_user_locks_dropped_after_submission(self, service, sample_answer_text):
        await service.submit("alice", service.todays_question().id, sample_answer_text)
        await service.submit("bob", service.todays_question().id, sample_answer_text)
        gc.collect()

        assert "alice" not in service._locks
        assert "bob" not in service._locks
