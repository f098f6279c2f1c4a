# tests/services/test_metrics_aggregator.py
"""
Unit tests for the MetricsAggregator in app.domains.activity.services.metrics_aggregator.
"""
import pytest
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

from app.domains.activity.exceptions import InvalidDependencyError
from app.domains.activity.services.metrics_aggregator import MetricsAggregator
from app.utils.datetime_utils import subtract_months


# --- Construction ---

def test_aggregator_requires_user_directory(activity_state):
    with pytest.raises(InvalidDependencyError):
        MetricsAggregator(activity_state, None)


def test_aggregator_requires_state(user_directory):
    with pytest.raises(InvalidDependencyError):
        MetricsAggregator(None, user_directory)


# --- Activity trends ---

@pytest.fixture
def trend_activity(record_at):
    record_at(1, "LOGIN", datetime(2024, 3, 15, 9, 15))
    record_at(2, "LOGIN", datetime(2024, 3, 15, 13, 5))
    record_at(3, "LOGIN", datetime(2024, 3, 12, 9, 40))
    record_at(4, "LOGIN", datetime(2024, 3, 1, 9, 0))
    record_at(5, "LOGIN", datetime(2024, 3, 8, 14, 30))  # exactly at the window start


def test_daily_active_users_bucketed_by_day(aggregator, fixed_clock, trend_activity):
    start_time = fixed_clock.now - timedelta(days=7)

    trends = aggregator.activity_trends_since(start_time)

    assert trends.daily_active_users == {
        datetime(2024, 3, 12): 1,
        datetime(2024, 3, 15): 2,
    }


def test_peak_hours_ignore_start_time(aggregator, fixed_clock, trend_activity):
    trends = aggregator.activity_trends_since(fixed_clock.now - timedelta(days=7))
    assert trends.peak_activity_hours == {9: 3, 13: 1, 14: 1}


def test_average_session_duration_is_fixed_placeholder(aggregator, fixed_clock):
    trends = aggregator.activity_trends_since(fixed_clock.now)
    assert trends.average_session_duration == 30.0


def test_activity_trends_to_dict_uses_iso_keys(aggregator, fixed_clock, trend_activity):
    payload = aggregator.activity_trends_since(fixed_clock.now - timedelta(days=7)).to_dict()

    assert payload["dailyActiveUsers"] == {
        "2024-03-12T00:00:00": 1,
        "2024-03-15T00:00:00": 2,
    }
    assert payload["peakActivityHours"][9] == 3
    assert payload["averageSessionDuration"] == 30.0


def test_activity_trends_on_empty_state(aggregator, fixed_clock):
    trends = aggregator.activity_trends_since(fixed_clock.now - timedelta(days=30))
    assert trends.daily_active_users == {}
    assert trends.peak_activity_hours == {}


# --- User growth ---

def test_retention_and_churn_rates(aggregator, user_directory, record_at, fixed_clock):
    user_directory.total = 4
    start_time = fixed_clock.now - timedelta(days=7)
    record_at(1, "LOGIN", fixed_clock.now - timedelta(days=1))
    record_at(2, "LOGIN", fixed_clock.now - timedelta(days=2))
    record_at(3, "LOGIN", fixed_clock.now - timedelta(days=20))

    growth = aggregator.user_growth_metrics(start_time)

    assert growth.user_retention_rate == 50.0
    assert growth.churn_rate == 50.0
    assert sum(growth.new_users.values()) == 2


def test_retention_rate_with_no_users_is_zero(aggregator, user_directory, record_at, fixed_clock):
    user_directory.total = 0
    record_at(1, "LOGIN", fixed_clock.now - timedelta(hours=1))

    growth = aggregator.user_growth_metrics(fixed_clock.now - timedelta(days=7))

    assert growth.user_retention_rate == 0.0
    assert growth.churn_rate == 100.0


def test_user_count_failure_degrades_to_zero(activity_state, fixed_clock, mocker):
    directory = MagicMock()
    directory.count_users.side_effect = RuntimeError("user store unavailable")
    mock_logger_error = mocker.patch("app.domains.activity.services.metrics_aggregator.logger.error")
    aggregator = MetricsAggregator(activity_state, directory, clock=fixed_clock)

    growth = aggregator.user_growth_metrics(fixed_clock.now - timedelta(days=7))

    assert growth.user_retention_rate == 0.0
    mock_logger_error.assert_called_once()


def test_user_growth_to_dict_keys(aggregator, fixed_clock):
    payload = aggregator.user_growth_metrics(fixed_clock.now).to_dict()
    assert set(payload) == {"newUsers", "userRetentionRate", "churnRate"}


# --- Security ---

def test_lockout_after_five_failures(aggregator, recorder):
    for _ in range(5):
        recorder.record_login_attempt("alice", False)
    for _ in range(4):
        recorder.record_login_attempt("bob", False)

    metrics = aggregator.security_metrics()

    assert metrics.failed_login_attempts == {"alice": 5, "bob": 4}
    assert metrics.account_lockouts == 1
    assert metrics.suspicious_activities == []


def test_lockout_cleared_by_success(aggregator, recorder):
    for _ in range(7):
        recorder.record_login_attempt("alice", False)
    recorder.record_login_attempt("alice", True)

    metrics = aggregator.security_metrics()

    assert "alice" not in metrics.failed_login_attempts
    assert metrics.account_lockouts == 0


def test_lockout_threshold_is_configurable(activity_state, user_directory, recorder):
    aggregator = MetricsAggregator(activity_state, user_directory, lockout_threshold=2)
    recorder.record_login_attempt("alice", False)
    recorder.record_login_attempt("alice", False)
    assert aggregator.security_metrics().account_lockouts == 1


def test_failed_login_snapshot_is_a_copy(aggregator, recorder, activity_state):
    recorder.record_login_attempt("alice", False)

    metrics = aggregator.security_metrics()
    metrics.failed_login_attempts["alice"] = 99

    assert activity_state.failed_logins["alice"] == 1


# --- Retention curves ---

@pytest.fixture
def retention_activity(record_at, user_directory):
    user_directory.total = 4
    record_at(1, "LOGIN", datetime(2024, 3, 15, 12, 30))
    record_at(2, "LOGIN", datetime(2024, 3, 14, 10, 0))
    record_at(3, "LOGIN", datetime(2024, 3, 10, 9, 0))


def test_daily_retention_walks_back_to_start(aggregator, fixed_clock, retention_activity):
    now = fixed_clock.now

    retention = aggregator.user_retention_metrics(now - timedelta(days=3))

    assert retention.daily_retention == {
        now: 0.0,
        now - timedelta(days=1): 25.0,
        now - timedelta(days=2): 50.0,
    }
    assert retention.weekly_retention == {now: 0.0}
    assert retention.monthly_retention == {now: 0.0}


def test_weekly_retention_steps(aggregator, fixed_clock, retention_activity):
    now = fixed_clock.now

    retention = aggregator.user_retention_metrics(now - timedelta(days=10))

    assert retention.weekly_retention == {
        now: 0.0,
        now - timedelta(weeks=1): 75.0,
    }


def test_retention_step_counts_for_long_window(aggregator, fixed_clock):
    retention = aggregator.user_retention_metrics(fixed_clock.now - timedelta(days=400))

    assert len(retention.daily_retention) == 400
    assert len(retention.weekly_retention) == 58
    assert len(retention.monthly_retention) == 14
    assert subtract_months(fixed_clock.now, 13) in retention.monthly_retention


def test_retention_with_future_start_is_empty(aggregator, fixed_clock, retention_activity):
    retention = aggregator.user_retention_metrics(fixed_clock.now + timedelta(days=1))

    assert retention.daily_retention == {}
    assert retention.weekly_retention == {}
    assert retention.monthly_retention == {}


def test_retention_with_no_users_reports_zero(aggregator, fixed_clock, record_at):
    record_at(1, "LOGIN", fixed_clock.now - timedelta(hours=1))

    retention = aggregator.user_retention_metrics(fixed_clock.now - timedelta(days=2))

    assert set(retention.daily_retention.values()) == {0.0}


def test_retention_walk_stops_at_earliest_date(aggregator):
    walk = aggregator._retention_walk(
        datetime(1, 3, 15),
        datetime.min,
        [],
        0,
        lambda cursor: subtract_months(cursor, 1),
    )
    assert list(walk) == [datetime(1, 3, 15), datetime(1, 2, 15), datetime(1, 1, 15)]


def test_retention_to_dict_keys(aggregator, fixed_clock, retention_activity):
    payload = aggregator.user_retention_metrics(fixed_clock.now - timedelta(days=2)).to_dict()

    assert set(payload) == {"dailyRetention", "weeklyRetention", "monthlyRetention"}
    assert payload["dailyRetention"]["2024-03-14T14:30:00"] == 25.0


# --- Behavior ---

def test_feature_usage_counts_labels(aggregator, recorder, fixed_clock):
    recorder.record_activity(1, "LOGIN")
    recorder.record_activity(1, "LOGIN")
    recorder.record_activity(1, "VIEW")

    analysis = aggregator.user_behavior_analysis(fixed_clock.now)

    assert analysis.feature_usage == {"LOGIN": 2, "VIEW": 1}
    assert analysis.common_user_paths == []


def test_most_active_users_sorted_with_stable_ties(aggregator, recorder, fixed_clock):
    for label in ("A", "B"):
        recorder.record_activity(3, label)
    for label in ("A", "B"):
        recorder.record_activity(1, label)
    for label in ("A", "B", "C", "D", "E"):
        recorder.record_activity(2, label)

    analysis = aggregator.user_behavior_analysis(fixed_clock.now)

    assert [(e.user_id, e.activity_count) for e in analysis.most_active_users] == [(2, 5), (3, 2), (1, 2)]


def test_most_active_users_limited_to_ten(aggregator, recorder, fixed_clock):
    for user_id in range(12):
        recorder.record_activity(user_id, "LOGIN")

    analysis = aggregator.user_behavior_analysis(fixed_clock.now)

    assert [e.user_id for e in analysis.most_active_users] == list(range(10))


def test_recorded_user_appears_in_most_active(aggregator, recorder, fixed_clock):
    recorder.record_activity(42, "LOGIN")

    payload = aggregator.user_behavior_analysis(fixed_clock.now - timedelta(days=7)).to_dict()

    assert {"userId": 42, "activityCount": 1} in payload["mostActiveUsers"]
    assert payload["featureUsage"] == {"LOGIN": 1}


def test_behavior_analysis_on_empty_state(aggregator, fixed_clock):
    analysis = aggregator.user_behavior_analysis(fixed_clock.now)
    assert analysis.most_active_users == []
    assert analysis.feature_usage == {}


def test_queries_do_not_mutate_state(aggregator, recorder, activity_state, fixed_clock):
    recorder.record_activity(1, "LOGIN")
    recorder.record_login_attempt("alice", False)
    before = (
        dict(activity_state.failed_logins),
        dict(activity_state.last_activity),
        {k: list(v) for k, v in activity_state.activity_log.items()},
    )
    start_time = fixed_clock.now - timedelta(days=30)

    aggregator.activity_trends_since(start_time)
    aggregator.user_growth_metrics(start_time)
    aggregator.security_metrics()
    aggregator.user_retention_metrics(start_time)
    aggregator.user_behavior_analysis(start_time)

    after = (
        dict(activity_state.failed_logins),
        dict(activity_state.last_activity),
        {k: list(v) for k, v in activity_state.activity_log.items()},
    )
    assert before == after


# --- Clock readings and timezones ---

class TickingClock:
    """Clock that moves forward one microsecond per reading."""

    def __init__(self, start: datetime):
        self.current = start

    def __call__(self) -> datetime:
        self.current += timedelta(microseconds=1)
        return self.current


def test_retention_uses_supplied_now(activity_state, user_directory, fixed_clock):
    clock = TickingClock(fixed_clock.now)
    aggregator = MetricsAggregator(activity_state, user_directory, clock=clock)
    now = clock()

    retention = aggregator.user_retention_metrics(now - timedelta(days=14), now=now)

    assert len(retention.daily_retention) == 14
    assert len(retention.weekly_retention) == 2
    assert next(iter(retention.daily_retention)) == now


def _aware(value: datetime) -> datetime:
    # Same instant as the naive local value, expressed in UTC
    return value.astimezone(timezone.utc)


def test_activity_trends_accepts_aware_start(aggregator, fixed_clock, trend_activity):
    start_time = fixed_clock.now - timedelta(days=7)

    aware = aggregator.activity_trends_since(_aware(start_time))

    assert aware == aggregator.activity_trends_since(start_time)


def test_user_growth_accepts_aware_start(aggregator, recorder, fixed_clock):
    recorder.record_activity(1, "LOGIN")
    start_time = fixed_clock.now - timedelta(days=7)

    aware = aggregator.user_growth_metrics(_aware(start_time))

    assert aware == aggregator.user_growth_metrics(start_time)
    assert sum(aware.new_users.values()) == 1


def test_user_retention_accepts_aware_start(aggregator, fixed_clock, retention_activity):
    start_time = fixed_clock.now - timedelta(days=3)

    aware = aggregator.user_retention_metrics(_aware(start_time), now=_aware(fixed_clock.now))

    assert aware == aggregator.user_retention_metrics(start_time)


def test_user_behavior_accepts_aware_start(aggregator, recorder, fixed_clock):
    recorder.record_activity(1, "LOGIN")

    analysis = aggregator.user_behavior_analysis(_aware(fixed_clock.now - timedelta(days=7)))

    assert analysis.feature_usage == {"LOGIN": 1}


def test_naive_start_with_aware_clock(activity_state, user_directory, fixed_clock):
    aware_now = _aware(fixed_clock.now)
    aggregator = MetricsAggregator(activity_state, user_directory, clock=lambda: aware_now)
    activity_state.stamp(1, aware_now - timedelta(hours=1))

    trends = aggregator.activity_trends_since(fixed_clock.now - timedelta(days=1))

    assert sum(trends.daily_active_users.values()) == 1
