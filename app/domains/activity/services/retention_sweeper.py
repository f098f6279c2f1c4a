"""
Retention sweeper for stale activity state.

Evicts users whose last recorded activity is older than the retention horizon
(one calendar month by default). Designed to be triggered once a day by an
external scheduler; running it more often is harmless.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from threading import Lock
from typing import Any, Dict, List, Optional

from app.common_types import Clock, UserID
from app.domains.activity.entities.activity_state import ActivityState
from app.domains.activity.exceptions import require_dependency
from app.utils.datetime_utils import match_timezone, subtract_months

logger = logging.getLogger(__name__)


class SweepState(Enum):
    IDLE = "idle"
    RUNNING = "running"


@dataclass(frozen=True)
class SweepResult:
    """Outcome of one sweep run."""
    cutoff: datetime
    evicted_users: int
    orphaned_activity_logs: int
    skipped: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "cutoff": self.cutoff.isoformat(),
            "evicted_users": self.evicted_users,
            "orphaned_activity_logs": self.orphaned_activity_logs,
            "skipped": self.skipped,
        }


class RetentionSweeper:
    """Two-state (idle/running) sweeper over the shared ActivityState."""

    def __init__(self, state: ActivityState, clock: Optional[Clock] = None, retention_months: int = 1):
        self.state = require_dependency(state, "ActivityState")
        self._clock: Clock = clock or datetime.now
        self.retention_months = retention_months
        self._run_lock = Lock()
        self._sweep_state = SweepState.IDLE
        self.last_result: Optional[SweepResult] = None

    @property
    def sweep_state(self) -> SweepState:
        return self._sweep_state

    def run_retention_sweep(self) -> SweepResult:
        """
        Remove every user whose last activity is strictly before ``now - retention``.

        The pass is keyed by the timestamp table: each stale user loses their
        timestamp and activity log together. Activity logs with no timestamp
        entry are left untouched and only counted. A call that arrives while a
        sweep is already running returns immediately with ``skipped=True``.
        """
        cutoff = subtract_months(self._clock(), self.retention_months)

        if not self._run_lock.acquire(blocking=False):
            logger.warning("Retention sweep already running; skipping this trigger")
            return SweepResult(cutoff=cutoff, evicted_users=0, orphaned_activity_logs=0, skipped=True)

        self._sweep_state = SweepState.RUNNING
        try:
            evicted = 0
            for user_id in self._stale_users(cutoff):
                if self._evict_if_stale(user_id, cutoff):
                    evicted += 1

            orphaned = self._count_orphaned_logs()
            if orphaned:
                logger.warning(f"Retention sweep skipped {orphaned} activity log(s) without a timestamp entry")

            result = SweepResult(cutoff=cutoff, evicted_users=evicted, orphaned_activity_logs=orphaned)
            self.last_result = result
            if evicted > 0:
                logger.info(f"Retention sweep completed: evicted {evicted} user(s) inactive since before {cutoff.isoformat()}")
            else:
                logger.debug(f"Retention sweep completed: nothing older than {cutoff.isoformat()}")
            return result
        finally:
            self._sweep_state = SweepState.IDLE
            self._run_lock.release()

    def _stale_users(self, cutoff: datetime) -> List[UserID]:
        snapshot = self.state.snapshot_last_activity()
        return [user_id for user_id, timestamp in snapshot.items() if match_timezone(timestamp, cutoff) < cutoff]

    def _evict_if_stale(self, user_id: UserID, cutoff: datetime) -> bool:
        # Re-check under the user's lock; activity may have arrived since the snapshot
        with self.state.user_lock(user_id):
            with self.state.structure_lock:
                timestamp = self.state.last_activity.get(user_id)
                if timestamp is None or match_timezone(timestamp, cutoff) >= cutoff:
                    return False
                del self.state.last_activity[user_id]
                self.state.activity_log.pop(user_id, None)
        logger.debug(f"Evicted activity state for user {user_id}")
        return True

    def _count_orphaned_logs(self) -> int:
        with self.state.structure_lock:
            return sum(1 for user_id in self.state.activity_log if user_id not in self.state.last_activity)
