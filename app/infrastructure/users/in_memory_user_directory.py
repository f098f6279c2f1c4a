"""
In-memory user directory.

Stands in for the external user store: it only knows which user ids exist and
keeps the total count ready so the analytics endpoints never wait on I/O.
"""
import logging
from datetime import datetime, timezone
from threading import Lock
from typing import Dict, Iterable, List, Optional

from app.application.interfaces.user_directory import UserDirectory, UserRecord
from app.common_types import UserID

logger = logging.getLogger(__name__)


class InMemoryUserDirectory(UserDirectory):
    """Thread-safe registry of known users with a cached total count."""

    def __init__(self, user_ids: Optional[Iterable[int]] = None):
        self._users: Dict[UserID, UserRecord] = {}
        self._count = 0
        self._lock = Lock()
        for user_id in user_ids or ():
            self.ensure_user(UserID(user_id))

    def ensure_user(self, user_id: UserID, username: Optional[str] = None) -> bool:
        """
        Register a user id if it is not known yet.

        Returns:
            True if the user was added, False if it already existed
        """
        with self._lock:
            if user_id in self._users:
                return False
            self._users[user_id] = UserRecord(
                user_id=user_id,
                username=username,
                created_at=datetime.now(timezone.utc),
            )
            self._count = len(self._users)
        logger.debug(f"Registered user {user_id} in directory")
        return True

    def get_all_users(self) -> List[UserRecord]:
        with self._lock:
            return list(self._users.values())

    def count_users(self) -> int:
        return self._count
