"""
Metrics aggregator for user activity analytics.

Handles:
- Activity trends (daily active users, peak activity hours)
- User growth, retention rate and churn rate
- Security metrics (failed logins, derived account lockouts)
- Daily/weekly/monthly retention curves
- Behavior analysis (most active users, feature usage)

Every query is a pure read over snapshots of the shared ActivityState. The
caller supplies ``start_time``; "now" comes from the injected clock and is read
once per call unless the caller passes its own. Timezone-aware and naive
arguments are both accepted and converted to the form the clock produces.
"""
import logging
from bisect import bisect_right
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Iterable, List, Optional

from app.application.interfaces.user_directory import UserDirectory
from app.common_types import ActivityLabel, Clock, UserID, Username
from app.domains.activity.entities.activity_state import ActivityState
from app.domains.activity.exceptions import require_dependency
from app.utils.datetime_utils import isoformat_keys, match_timezone, start_of_day, subtract_months

logger = logging.getLogger(__name__)


DEFAULT_LOCKOUT_THRESHOLD = 5
DEFAULT_MOST_ACTIVE_LIMIT = 10
# No session-duration data is tracked; this value is reported as-is.
DEFAULT_AVERAGE_SESSION_DURATION = 30.0


@dataclass(frozen=True)
class ActivityTrends:
    """Activity trend snapshot."""
    daily_active_users: Dict[datetime, int]
    peak_activity_hours: Dict[int, int]
    average_session_duration: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "dailyActiveUsers": isoformat_keys(self.daily_active_users),
            "peakActivityHours": dict(self.peak_activity_hours),
            "averageSessionDuration": self.average_session_duration,
        }


@dataclass(frozen=True)
class UserGrowthMetrics:
    """New-user buckets with retention and churn percentages."""
    new_users: Dict[datetime, int]
    user_retention_rate: float
    churn_rate: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "newUsers": isoformat_keys(self.new_users),
            "userRetentionRate": self.user_retention_rate,
            "churnRate": self.churn_rate,
        }


@dataclass(frozen=True)
class SecurityMetrics:
    """Login-failure based security snapshot."""
    failed_login_attempts: Dict[Username, int]
    account_lockouts: int
    suspicious_activities: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "failedLoginAttempts": dict(self.failed_login_attempts),
            "suspiciousActivities": list(self.suspicious_activities),
            "accountLockouts": self.account_lockouts,
        }


@dataclass(frozen=True)
class RetentionMetrics:
    """Retention percentages keyed by the cursor time of each step."""
    daily_retention: Dict[datetime, float]
    weekly_retention: Dict[datetime, float]
    monthly_retention: Dict[datetime, float]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "dailyRetention": isoformat_keys(self.daily_retention),
            "weeklyRetention": isoformat_keys(self.weekly_retention),
            "monthlyRetention": isoformat_keys(self.monthly_retention),
        }


@dataclass(frozen=True)
class ActiveUserEntry:
    user_id: UserID
    activity_count: int

    def to_dict(self) -> Dict[str, Any]:
        return {"userId": self.user_id, "activityCount": self.activity_count}


@dataclass(frozen=True)
class BehaviorAnalysis:
    """Most active users and feature usage tallies."""
    most_active_users: List[ActiveUserEntry]
    feature_usage: Dict[ActivityLabel, int]
    common_user_paths: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "mostActiveUsers": [entry.to_dict() for entry in self.most_active_users],
            "commonUserPaths": list(self.common_user_paths),
            "featureUsage": dict(self.feature_usage),
        }


class MetricsAggregator:
    """
    Derives activity, growth, security, retention and behavior statistics.

    The user directory is only consulted for the total user count used as the
    denominator of retention and churn percentages.
    """

    def __init__(
        self,
        state: ActivityState,
        user_directory: UserDirectory,
        clock: Optional[Clock] = None,
        lockout_threshold: int = DEFAULT_LOCKOUT_THRESHOLD,
        most_active_limit: int = DEFAULT_MOST_ACTIVE_LIMIT,
        average_session_duration: float = DEFAULT_AVERAGE_SESSION_DURATION,
    ):
        self.state = require_dependency(state, "ActivityState")
        self.user_directory = require_dependency(user_directory, "UserDirectory")
        self._clock: Clock = clock or datetime.now
        self.lockout_threshold = lockout_threshold
        self.most_active_limit = most_active_limit
        self.average_session_duration = average_session_duration

        logger.info(
            f"MetricsAggregator initialized (lockout_threshold={lockout_threshold}, "
            f"most_active_limit={most_active_limit})"
        )

    # Activity Trends
    def activity_trends_since(self, start_time: datetime) -> ActivityTrends:
        """
        Daily active users after ``start_time`` and the hour-of-day histogram.

        The peak-hours histogram covers the whole last-activity table and is
        not filtered by ``start_time``.
        """
        start_time = self._align(start_time)
        last_activity = self.state.snapshot_last_activity()
        return ActivityTrends(
            daily_active_users=self._bucket_by_day(last_activity.values(), start_time),
            peak_activity_hours=self._peak_activity_hours(last_activity.values()),
            average_session_duration=self.average_session_duration,
        )

    def user_growth_metrics(self, start_time: datetime) -> UserGrowthMetrics:
        """New users per day plus retention/churn percentages relative to ``start_time``."""
        start_time = self._align(start_time)
        last_activity = self.state.snapshot_last_activity()
        active_users = sum(1 for timestamp in last_activity.values() if timestamp > start_time)
        retention_rate = self._percentage(active_users, self._total_users())
        return UserGrowthMetrics(
            new_users=self._bucket_by_day(last_activity.values(), start_time),
            user_retention_rate=retention_rate,
            churn_rate=100.0 - retention_rate,
        )

    # Security
    def security_metrics(self) -> SecurityMetrics:
        failed_logins = self.state.snapshot_failed_logins()
        lockouts = sum(1 for failures in failed_logins.values() if failures >= self.lockout_threshold)
        return SecurityMetrics(
            failed_login_attempts=failed_logins,
            account_lockouts=lockouts,
        )

    # Retention
    def user_retention_metrics(self, start_time: datetime, now: Optional[datetime] = None) -> RetentionMetrics:
        """
        Retention curves walking backward from now until the cursor reaches ``start_time``.

        Each step records the percentage of all users whose last activity is
        after the cursor. A ``start_time`` at or after now yields empty curves.
        Pass ``now`` when ``start_time`` was derived from it, so both ends of
        the window come from the same clock reading.
        """
        clock_now = self._clock()
        now = clock_now if now is None else match_timezone(now, clock_now)
        start_time = match_timezone(start_time, clock_now)
        timestamps = sorted(self.state.snapshot_last_activity().values())
        total_users = self._total_users()

        return RetentionMetrics(
            daily_retention=self._retention_walk(
                now, start_time, timestamps, total_users, lambda cursor: cursor - timedelta(days=1)
            ),
            weekly_retention=self._retention_walk(
                now, start_time, timestamps, total_users, lambda cursor: cursor - timedelta(weeks=1)
            ),
            monthly_retention=self._retention_walk(
                now, start_time, timestamps, total_users, lambda cursor: subtract_months(cursor, 1)
            ),
        )

    # Behavior
    def user_behavior_analysis(self, start_time: datetime) -> BehaviorAnalysis:
        """
        Most active users and feature usage over the whole activity log.

        ``start_time`` is accepted for interface symmetry; activity sequences
        carry no per-entry timestamps, so no window can be applied.
        """
        activity_log = self.state.snapshot_activity_log()

        # sorted() is stable, so ties keep the log's insertion order
        ranked = sorted(activity_log.items(), key=lambda item: len(item[1]), reverse=True)
        most_active = [
            ActiveUserEntry(user_id=user_id, activity_count=len(labels))
            for user_id, labels in ranked[: self.most_active_limit]
        ]

        feature_usage: Counter = Counter()
        for labels in activity_log.values():
            feature_usage.update(labels)

        return BehaviorAnalysis(
            most_active_users=most_active,
            feature_usage=dict(feature_usage),
        )

    # Helpers
    def _align(self, value: datetime) -> datetime:
        return match_timezone(value, self._clock())

    def _total_users(self) -> int:
        try:
            return max(0, int(self.user_directory.count_users()))
        except Exception as e:
            logger.error(f"Error reading total user count: {e}", exc_info=True)
            return 0

    @staticmethod
    def _percentage(part: int, total: int) -> float:
        if total <= 0:
            return 0.0
        return part / total * 100.0

    @staticmethod
    def _bucket_by_day(timestamps: Iterable[datetime], start_time: datetime) -> Dict[datetime, int]:
        counts = Counter(start_of_day(timestamp) for timestamp in timestamps if timestamp > start_time)
        return dict(sorted(counts.items()))

    @staticmethod
    def _peak_activity_hours(timestamps: Iterable[datetime]) -> Dict[int, int]:
        counts = Counter(timestamp.hour for timestamp in timestamps)
        return dict(sorted(counts.items()))

    def _retention_walk(
        self,
        now: datetime,
        start_time: datetime,
        sorted_timestamps: List[datetime],
        total_users: int,
        step: Callable[[datetime], datetime],
    ) -> Dict[datetime, float]:
        retention: Dict[datetime, float] = {}
        cursor = now
        while cursor > start_time:
            retained = len(sorted_timestamps) - bisect_right(sorted_timestamps, cursor)
            retention[cursor] = self._percentage(retained, total_users)
            try:
                cursor = step(cursor)
            except (OverflowError, ValueError):
                # Stepped past the earliest representable date
                break
        return retention
