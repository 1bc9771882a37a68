"""
Pytest Configuration and Fixtures.

This file configures pytest and provides shared fixtures for all tests.
"""
import pytest
import sys
from datetime import date
from pathlib import Path

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from src.practice import (  # noqa: E402
    AnswerSubmissionService,
    FixedClock,
    FixedFeedbackProvider,
    InMemoryRecordStore,
    InvalidationBus,
    QuestionPool,
    StatsStore,
)

PLACEHOLDER_FEEDBACK = "Great response!"


class CorruptibleRecordStore(InMemoryRecordStore):
    """In-memory store that can also hold payloads no writer would produce."""

    def put_raw(self, user_id: str, name: str, payload: str) -> None:
        with self._lock:
            self._records[(user_id, name)] = payload


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests (SQLite on disk)")
    config.addinivalue_line("markers", "smoke: Smoke tests for CLI commands")


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their location."""
    for item in items:
        # Mark based on test file location
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
        elif "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)
        elif "smoke" in str(item.fspath):
            item.add_marker(pytest.mark.smoke)


@pytest.fixture(scope="session")
def project_root():
    """Return the project root directory."""
    return PROJECT_ROOT


@pytest.fixture
def clock():
    """Clock pinned to 2024-03-10 09:00 UTC."""
    return FixedClock(date(2024, 3, 10))


@pytest.fixture
def pool():
    """The built-in five-question pool."""
    return QuestionPool()


@pytest.fixture
def records():
    return CorruptibleRecordStore()


@pytest.fixture
def store(records):
    return StatsStore(records)


@pytest.fixture
def bus():
    return InvalidationBus()


@pytest.fixture
def make_service(store, pool, clock, bus):
    """Factory for submission services sharing the same store and clock."""

    def _make(**overrides):
        options = dict(
            store=store,
            pool=pool,
            clock=clock,
            feedback=FixedFeedbackProvider(PLACEHOLDER_FEEDBACK),
            invalidation=bus,
            retry_delay=0,
        )
        options.update(overrides)
        return AnswerSubmissionService(**options)

    return _make


@pytest.fixture
def service(make_service):
    return make_service()


@pytest.fixture
def sample_answer_text():
    """A realistic answer long enough to pass validation."""
    return "I broke a big migration into small reversible steps and shipped it safely."
