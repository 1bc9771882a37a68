"""
Persistence port for per-user JSON records.

A record store keeps named JSON documents per user ("userStats",
"answerHistory"). Two implementations:

- InMemoryRecordStore: dictionary backed, for tests and dry runs
- SQLiteRecordStore: portable local persistence (default ~/.daily-practice/practice.db)

Both support set_many(), which writes several records in one transaction.
"""

from __future__ import annotations

import json
import sqlite3
import threading
from datetime import datetime
from pathlib import Path
from typing import Any, Protocol

from loguru import logger

from .errors import MalformedRecordError, PersistenceError

USER_STATS = "userStats"
ANSWER_HISTORY = "answerHistory"


class RecordStore(Protocol):
    """Key-value port: named JSON records scoped to a user."""

    def get(self, user_id: str, name: str) -> Any | None: ...

    def set(self, user_id: str, name: str, value: Any) -> None: ...

    def set_if_absent(self, user_id: str, name: str, value: Any) -> Any: ...

    def set_many(self, user_id: str, records: dict[str, Any]) -> None: ...

    def close(self) -> None: ...


def _decode(name: str, payload: str) -> Any:
    try:
        return json.loads(payload)
    except json.JSONDecodeError as e:
        raise MalformedRecordError(name, str(e)) from e


# =============================================================================
# In-memory
# =============================================================================


class InMemoryRecordStore:
    """
    Dictionary-backed record store.

    Values are kept as JSON text so callers never share mutable state with
    the store, mirroring what a real backend returns.
    """

    def __init__(self):
        self._records: dict[tuple[str, str], str] = {}
        self._lock = threading.Lock()

    def get(self, user_id: str, name: str) -> Any | None:
        payload = self._records.get((user_id, name))
        if payload is None:
            return None
        return _decode(name, payload)

    def set(self, user_id: str, name: str, value: Any) -> None:
        with self._lock:
            self._records[(user_id, name)] = json.dumps(value)

    def set_if_absent(self, user_id: str, name: str, value: Any) -> Any:
        with self._lock:
            payload = self._records.setdefault((user_id, name), json.dumps(value))
        return _decode(name, payload)

    def set_many(self, user_id: str, records: dict[str, Any]) -> None:
        encoded = {name: json.dumps(value) for name, value in records.items()}
        with self._lock:
            for name, payload in encoded.items():
                self._records[(user_id, name)] = payload

    def close(self) -> None:
        pass


# =============================================================================
# SQLite
# =============================================================================


class SQLiteRecordStore:
    """
    SQLite-backed record store.

    One row per (user_id, name). The connection is shared across threads
    because the submission service runs storage calls off the event loop;
    a lock serializes access to it.
    """

    DEFAULT_DB_PATH = Path.home() / ".daily-practice" / "practice.db"

    def __init__(self, db_path: Path | str | None = None):
        """
        Initialize the record store.

        Args:
            db_path: Custom database path, or ":memory:" (defaults to ~/.daily-practice/practice.db)
        """
        self.db_path = db_path or self.DEFAULT_DB_PATH
        if str(self.db_path) != ":memory:":
            self.db_path = Path(self.db_path)
            self.db_path.parent.mkdir(parents=True, exist_ok=True)

        self._conn: sqlite3.Connection | None = None
        self._lock = threading.RLock()
        self._init_schema()

        logger.info(f"SQLiteRecordStore initialized at {self.db_path}")

    @property
    def conn(self) -> sqlite3.Connection:
        """Get or create database connection."""
        if self._conn is None:
            try:
                self._conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
            except sqlite3.Error as e:
                raise PersistenceError(f"Cannot open {self.db_path}: {e}") from e
            self._conn.row_factory = sqlite3.Row
        return self._conn

    def _init_schema(self) -> None:
        """Initialize database schema."""
        with self._lock:
            try:
                self.conn.execute("""
                    CREATE TABLE IF NOT EXISTS user_records (
                        user_id TEXT NOT NULL,
                        name TEXT NOT NULL,
                        payload TEXT NOT NULL,
                        updated_at TIMESTAMP NOT NULL,
                        PRIMARY KEY (user_id, name)
                    )
                """)
                self.conn.commit()
            except sqlite3.Error as e:
                raise PersistenceError(f"Schema initialization failed: {e}") from e

    def get(self, user_id: str, name: str) -> Any | None:
        with self._lock:
            try:
                row = self.conn.execute(
                    "SELECT payload FROM user_records WHERE user_id = ? AND name = ?",
                    (user_id, name),
                ).fetchone()
            except sqlite3.Error as e:
                raise PersistenceError(f"Failed to read {name} for {user_id}: {e}") from e

        if row is None:
            return None
        return _decode(name, row["payload"])

    def set(self, user_id: str, name: str, value: Any) -> None:
        self.set_many(user_id, {name: value})

    def set_if_absent(self, user_id: str, name: str, value: Any) -> Any:
        """Insert the record unless one exists; return whichever is stored."""
        with self._lock:
            try:
                self.conn.execute(
                    """
                    INSERT OR IGNORE INTO user_records (user_id, name, payload, updated_at)
                    VALUES (?, ?, ?, ?)
                """,
                    (user_id, name, json.dumps(value), datetime.now().isoformat()),
                )
                self.conn.commit()
            except sqlite3.Error as e:
                self.conn.rollback()
                raise PersistenceError(f"Failed to initialize {name} for {user_id}: {e}") from e
            return self.get(user_id, name)

    def set_many(self, user_id: str, records: dict[str, Any]) -> None:
        """Write several records in one transaction."""
        now = datetime.now().isoformat()
        rows = [(user_id, name, json.dumps(value), now) for name, value in records.items()]

        with self._lock:
            try:
                with self.conn:
                    self.conn.executemany(
                        """
                        INSERT INTO user_records (user_id, name, payload, updated_at)
                        VALUES (?, ?, ?, ?)
                        ON CONFLICT(user_id, name) DO UPDATE SET
                            payload = excluded.payload,
                            updated_at = excluded.updated_at
                    """,
                        rows,
                    )
            except sqlite3.Error as e:
                raise PersistenceError(f"Failed to write {', '.join(records)} for {user_id}: {e}") from e

    def close(self) -> None:
        """Close the database connection."""
        with self._lock:
            if self._conn:
                self._conn.close()
                self._conn = None
