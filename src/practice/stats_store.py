"""
StatsStore: owns a user's persisted statistics and answer history.

Write ordering: answer history and stats go out in one transaction through
``RecordStore.set_many``. If a backend ever applies them one by one, the
answer is written first, so the only partial state possible is an answer
without its stats update. ``load`` detects that case and folds the orphaned
answers back in.
"""

from __future__ import annotations

import threading

from loguru import logger

from .errors import MalformedRecordError
from .models import Answer, UserStats
from .record_store import ANSWER_HISTORY, USER_STATS, RecordStore
from .streak_engine import ScorePolicy, replay, transition


class StatsStore:
    """Read, initialize and write UserStats and answer history for users."""

    def __init__(self, records: RecordStore, policy: ScorePolicy | None = None):
        """
        Args:
            records: Persistence port
            policy: Score policy used when stats must be rebuilt from history
        """
        self.records = records
        self.policy = policy
        self._init_lock = threading.Lock()

    # =========================================================================
    # Reads
    # =========================================================================

    def load(self, user_id: str) -> UserStats:
        """
        Get stats for a user, creating the default record on first read.

        Malformed stats are rebuilt from the answer history (or reset to
        defaults when there is none). Answers newer than the stats snapshot
        are folded in and the repaired snapshot is saved.
        """
        history = self.history(user_id)

        try:
            stats = self._read_or_init(user_id)
        except MalformedRecordError as e:
            logger.warning(f"{e}; rebuilding stats for {user_id} from {len(history)} answers")
            stats = replay(history, self.policy)
            self.save(user_id, stats)
            return stats

        orphans = self._orphaned_answers(stats, history)
        if orphans:
            logger.warning(f"Reconciling {len(orphans)} answer(s) missing from stats for {user_id}")
            for answer in orphans:
                stats = transition(stats, answer.day, score=answer.score, policy=self.policy)
            self.save(user_id, stats)

        return stats

    def _read_or_init(self, user_id: str) -> UserStats:
        raw = self.records.get(user_id, USER_STATS)
        if raw is None:
            with self._init_lock:
                raw = self.records.set_if_absent(user_id, USER_STATS, UserStats().to_dict())
            logger.debug(f"Initialized default stats for {user_id}")
        return UserStats.from_dict(raw)

    @staticmethod
    def _orphaned_answers(stats: UserStats, history: list[Answer]) -> list[Answer]:
        """Answers recorded after the stats snapshot's last answer day, oldest first."""
        if stats.last_answer_date is None:
            orphans = history if stats.total_answers == 0 else []
        else:
            orphans = [a for a in history if a.day > stats.last_answer_date]
        return sorted(orphans, key=lambda a: a.created_at)

    def history(self, user_id: str) -> list[Answer]:
        """
        Get the answer history, newest first.

        Corrupted history falls back to an empty list.
        """
        try:
            raw = self.records.get(user_id, ANSWER_HISTORY)
            if raw is None:
                return []
            if not isinstance(raw, list):
                raise MalformedRecordError(ANSWER_HISTORY, f"expected list, got {type(raw).__name__}")
            return [Answer.from_dict(item) for item in raw]
        except MalformedRecordError as e:
            logger.warning(f"{e}; treating history for {user_id} as empty")
            return []

    def find_answer(self, user_id: str, day_key: str) -> Answer | None:
        """Most recent answer recorded on the given canonical day, if any."""
        for answer in self.history(user_id):
            if answer.day.isoformat() == day_key:
                return answer
        return None

    # =========================================================================
    # Writes
    # =========================================================================

    def save(self, user_id: str, stats: UserStats) -> None:
        """Write the stats snapshot."""
        self.records.set(user_id, USER_STATS, stats.to_dict())

    def append_answer(self, user_id: str, answer: Answer) -> None:
        """Prepend an answer to the history."""
        history = self.history(user_id)
        self.records.set(user_id, ANSWER_HISTORY, [a.to_dict() for a in [answer, *history]])

    def persist(self, user_id: str, stats: UserStats, answer: Answer) -> None:
        """
        Record an accepted answer and the stats it produced as one write.

        Args:
            user_id: Owner of the records
            stats: Snapshot after the transition
            answer: The accepted answer
        """
        # A retried write may follow one that landed but reported failure.
        history = [answer, *(a for a in self.history(user_id) if a.id != answer.id)]
        self.records.set_many(
            user_id,
            {
                ANSWER_HISTORY: [a.to_dict() for a in history],
                USER_STATS: stats.to_dict(),
            },
        )
        logger.debug(f"Persisted answer {answer.id} for {user_id} (total={stats.total_answers})")

    def close(self) -> None:
        """Close the underlying record store."""
        self.records.close()
