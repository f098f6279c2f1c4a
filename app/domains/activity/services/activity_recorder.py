"""
Event recorder for login attempts and user activity.

Both operations are called synchronously on every request by the HTTP layer,
so they only touch in-memory state and never raise.
"""
import logging
from datetime import datetime
from typing import Optional

from app.common_types import ActivityLabel, Clock, UserID, Username
from app.domains.activity.entities.activity_state import ActivityState
from app.domains.activity.exceptions import require_dependency

logger = logging.getLogger(__name__)


class ActivityRecorder:
    """Writes login-attempt and activity events into the shared ActivityState."""

    def __init__(self, state: ActivityState, clock: Optional[Clock] = None):
        self.state = require_dependency(state, "ActivityState")
        self._clock: Clock = clock or datetime.now

    def record_login_attempt(self, username: Username, success: bool) -> None:
        """
        Track consecutive login failures for a username.

        A failure increments the counter (starting at 1); a success removes the
        entry entirely so counters never hold zero.

        Args:
            username: Login name as submitted, any string including empty
            success: Whether the attempt authenticated
        """
        with self.state.failed_logins_lock:
            if success:
                cleared = self.state.failed_logins.pop(username, None)
                if cleared is not None:
                    logger.debug(f"Cleared {cleared} failed login(s) for '{username}'")
                return
            failures = self.state.failed_logins.get(username, 0) + 1
            self.state.failed_logins[username] = failures
        logger.debug(f"Failed login #{failures} recorded for '{username}'")

    def record_activity(self, user_id: UserID, label: ActivityLabel) -> None:
        """
        Append an activity label for a user and refresh their last-activity time.

        The label is appended before the timestamp moves, both under the user's
        lock, so a reader never sees a fresh timestamp next to a stale sequence.

        Args:
            user_id: User identifier from the user store
            label: Activity label; duplicates and empty strings are kept as-is
        """
        with self.state.user_lock(user_id):
            self.state.activity_sequence(user_id).append(label)
            self.state.stamp(user_id, self._clock())
        logger.debug(f"Recorded activity '{label}' for user {user_id}")
