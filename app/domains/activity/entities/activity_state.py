"""
Shared in-memory state for the activity analytics engine.

One container holds the three tables the recorder writes, the aggregator reads
and the sweeper prunes. A fresh instance is created per application (and per
test); nothing is persisted.

Locking discipline:
- ``_lock`` guards key membership of ``last_activity`` and ``activity_log`` and
  is held while readers take snapshots.
- ``_failed_logins_lock`` guards the failure counter table.
- one lock per user serializes that user's append + timestamp update and
  the sweeper's eviction of the same user. The registry holds these weakly,
  so an entry lives only while some thread still references the lock.
Lock order is always user lock -> ``_lock``.
"""
import logging
import weakref
from datetime import datetime
from threading import Lock
from typing import Dict, List, Tuple

from app.common_types import ActivityLabel, UserID, Username

logger = logging.getLogger(__name__)


class ActivityState:
    """Thread-safe container for login failures, last-activity times and activity logs."""

    def __init__(self) -> None:
        # Structure: {username: consecutive failures}, values always >= 1
        self.failed_logins: Dict[Username, int] = {}
        # Structure: {user_id: timestamp of most recent activity}
        self.last_activity: Dict[UserID, datetime] = {}
        # Structure: {user_id: [activity labels in chronological order]}
        self.activity_log: Dict[UserID, List[ActivityLabel]] = {}

        self._lock = Lock()
        self._failed_logins_lock = Lock()
        self._user_locks: "weakref.WeakValueDictionary[UserID, Lock]" = weakref.WeakValueDictionary()

    @property
    def failed_logins_lock(self) -> Lock:
        return self._failed_logins_lock

    @property
    def structure_lock(self) -> Lock:
        return self._lock

    def user_lock(self, user_id: UserID) -> Lock:
        """Return the lock serializing writes for a single user, creating it on first use."""
        with self._lock:
            lock = self._user_locks.get(user_id)
            if lock is None:
                lock = Lock()
                self._user_locks[user_id] = lock
            return lock

    def user_lock_count(self) -> int:
        """Number of per-user locks still referenced by some thread."""
        with self._lock:
            return len(self._user_locks)

    def activity_sequence(self, user_id: UserID) -> List[ActivityLabel]:
        """Return the live activity list for a user, creating an empty one if absent."""
        with self._lock:
            return self.activity_log.setdefault(user_id, [])

    def stamp(self, user_id: UserID, timestamp: datetime) -> None:
        with self._lock:
            self.last_activity[user_id] = timestamp

    def snapshot_failed_logins(self) -> Dict[Username, int]:
        with self._failed_logins_lock:
            return dict(self.failed_logins)

    def snapshot_last_activity(self) -> Dict[UserID, datetime]:
        with self._lock:
            return dict(self.last_activity)

    def snapshot_activity_log(self) -> Dict[UserID, Tuple[ActivityLabel, ...]]:
        """Copy every user's activity sequence; iteration order matches insertion order."""
        with self._lock:
            return {user_id: tuple(labels) for user_id, labels in self.activity_log.items()}

    def get_statistics(self) -> Dict[str, int]:
        """Table sizes for health reporting."""
        with self._failed_logins_lock:
            tracked_usernames = len(self.failed_logins)
        with self._lock:
            return {
                "tracked_usernames": tracked_usernames,
                "users_with_activity": len(self.last_activity),
                "activity_log_entries": len(self.activity_log),
                "total_activities": sum(len(labels) for labels in self.activity_log.values()),
            }

    def clear(self) -> None:
        """
        Drop all recorded state. Used for testing and emergency cleanup.
        """
        with self._failed_logins_lock:
            self.failed_logins.clear()
        with self._lock:
            self.last_activity.clear()
            self.activity_log.clear()
        logger.info("Activity state cleared")
