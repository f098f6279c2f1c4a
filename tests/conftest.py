"""
Global fixtures for the user activity analytics test suite.
"""
import pytest
from datetime import datetime, timedelta
from typing import List

from fastapi.testclient import TestClient

from app.application.interfaces.user_directory import UserDirectory, UserRecord
from app.common_types import UserID
from app.core.config import Settings
from app.domains.activity.entities.activity_state import ActivityState
from app.domains.activity.services.activity_recorder import ActivityRecorder
from app.domains.activity.services.metrics_aggregator import MetricsAggregator
from app.domains.activity.services.retention_sweeper import RetentionSweeper
from app.main import create_app


FIXED_NOW = datetime(2024, 3, 15, 14, 30)


class FixedClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def set(self, value: datetime) -> None:
        self.now = value

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


class FakeUserDirectory(UserDirectory):
    """User directory whose total count is set directly by tests."""

    def __init__(self, total: int = 0):
        self.total = total

    def get_all_users(self) -> List[UserRecord]:
        return [UserRecord(user_id=UserID(i)) for i in range(1, self.total + 1)]

    def count_users(self) -> int:
        return self.total


@pytest.fixture
def fixed_clock() -> FixedClock:
    return FixedClock(FIXED_NOW)


@pytest.fixture
def activity_state() -> ActivityState:
    """A fresh state container per test."""
    return ActivityState()


@pytest.fixture
def user_directory() -> FakeUserDirectory:
    return FakeUserDirectory(total=0)


@pytest.fixture
def recorder(activity_state, fixed_clock) -> ActivityRecorder:
    return ActivityRecorder(activity_state, clock=fixed_clock)


@pytest.fixture
def aggregator(activity_state, user_directory, fixed_clock) -> MetricsAggregator:
    return MetricsAggregator(activity_state, user_directory, clock=fixed_clock)


@pytest.fixture
def sweeper(activity_state, fixed_clock) -> RetentionSweeper:
    return RetentionSweeper(activity_state, clock=fixed_clock)


@pytest.fixture
def record_at(recorder, fixed_clock):
    """Record an activity as if it happened at ``when``, then restore the clock."""
    def _record(user_id: int, label: str, when: datetime) -> None:
        original = fixed_clock.now
        fixed_clock.set(when)
        try:
            recorder.record_activity(UserID(user_id), label)
        finally:
            fixed_clock.set(original)
    return _record


@pytest.fixture
def test_settings() -> Settings:
    """Settings for HTTP tests: no background sweep, no rate limiting."""
    return Settings(
        APP_NAME="User Activity Analytics Test",
        START_RETENTION_SWEEP=False,
        RATE_LIMIT_ENABLED=False,
    )


@pytest.fixture
def client(test_settings):
    """TestClient with the application lifespan running."""
    with TestClient(create_app(test_settings)) as test_client:
        yield test_client
