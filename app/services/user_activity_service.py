"""
User activity service.

Wires one ActivityState to its recorder, aggregator and sweeper and exposes
the operations the HTTP layer and the scheduler need:
- Event recording (login attempts, activity labels)
- JSON-ready analytics queries, timed per operation
- Manual and periodic retention sweeps
"""
import asyncio
import logging
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from app.application.interfaces.user_directory import UserDirectory
from app.common_types import ActivityLabel, Clock, UserID, Username
from app.core.config import Settings
from app.domains.activity.entities.activity_state import ActivityState
from app.domains.activity.exceptions import require_dependency
from app.domains.activity.services.activity_recorder import ActivityRecorder
from app.domains.activity.services.metrics_aggregator import MetricsAggregator
from app.domains.activity.services.retention_sweeper import RetentionSweeper, SweepResult
from app.utils.metrics_collector import TimingCollector

logger = logging.getLogger(__name__)


class UserActivityService:
    """Facade over the activity analytics engine."""

    def __init__(
        self,
        user_directory: UserDirectory,
        state: Optional[ActivityState] = None,
        clock: Optional[Clock] = None,
        settings: Optional[Settings] = None,
    ):
        self.user_directory = require_dependency(user_directory, "UserDirectory")
        self.state = state if state is not None else ActivityState()
        self._clock: Clock = clock or datetime.now

        lockout_threshold = settings.ACCOUNT_LOCKOUT_THRESHOLD if settings else 5
        most_active_limit = settings.MOST_ACTIVE_USERS_LIMIT if settings else 10
        average_session = settings.AVERAGE_SESSION_DURATION_MINUTES if settings else 30.0
        retention_months = settings.ACTIVITY_RETENTION_MONTHS if settings else 1

        self.recorder = ActivityRecorder(self.state, clock=self._clock)
        self.aggregator = MetricsAggregator(
            self.state,
            self.user_directory,
            clock=self._clock,
            lockout_threshold=lockout_threshold,
            most_active_limit=most_active_limit,
            average_session_duration=average_session,
        )
        self.sweeper = RetentionSweeper(self.state, clock=self._clock, retention_months=retention_months)
        self.timings = TimingCollector()

        logger.info("UserActivityService initialized")

    def now(self) -> datetime:
        return self._clock()

    def window_start(self, days: int, now: Optional[datetime] = None) -> datetime:
        """Start of a query window covering the ``days`` days before ``now`` (default: the clock)."""
        return (now if now is not None else self._clock()) - timedelta(days=days)

    # Event recording
    def record_login_attempt(self, username: Username, success: bool) -> None:
        self.recorder.record_login_attempt(username, success)

    def record_activity(self, user_id: UserID, label: ActivityLabel) -> None:
        self.recorder.record_activity(user_id, label)

    # Analytics queries
    def get_activity_trends(self, start_time: datetime) -> Dict[str, Any]:
        return self.aggregator.activity_trends_since(start_time).to_dict()

    def get_user_growth_metrics(self, start_time: datetime) -> Dict[str, Any]:
        return self.aggregator.user_growth_metrics(start_time).to_dict()

    def get_security_metrics(self) -> Dict[str, Any]:
        return self.aggregator.security_metrics().to_dict()

    def get_user_retention_metrics(self, start_time: datetime, now: Optional[datetime] = None) -> Dict[str, Any]:
        return self.aggregator.user_retention_metrics(start_time, now=now).to_dict()

    def get_user_behavior_analysis(self, start_time: datetime) -> Dict[str, Any]:
        return self.aggregator.user_behavior_analysis(start_time).to_dict()

    # Retention sweeping
    def run_retention_sweep(self) -> SweepResult:
        return self.sweeper.run_retention_sweep()

    async def run_periodic_sweep(self, interval_seconds: float) -> None:
        """
        Sweep forever at a fixed interval until cancelled.

        A failing sweep is logged and retried on the next tick.
        """
        logger.info(f"Starting periodic retention sweep every {interval_seconds}s")
        try:
            while True:
                await asyncio.sleep(interval_seconds)
                try:
                    await asyncio.to_thread(self.sweeper.run_retention_sweep)
                except Exception as e:
                    logger.error(f"Retention sweep loop error: {e}", exc_info=True)
        except asyncio.CancelledError:
            logger.info("Periodic retention sweep cancelled")
            raise

    def get_statistics(self) -> Dict[str, Any]:
        """State sizes, sweeper status and endpoint timings for health reporting."""
        last_result = self.sweeper.last_result
        return {
            **self.state.get_statistics(),
            "known_users": self.user_directory.count_users(),
            "sweeper_state": self.sweeper.sweep_state.value,
            "last_sweep": last_result.to_dict() if last_result else None,
            "endpoint_timings": self.timings.get_summary(),
        }
