"""
User directory interface for the application layer.

The analytics engine never manages users itself; it only needs the population
of known users to compute retention and churn denominators. This interface
defines that contract without coupling the engine to a specific store.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

from app.common_types import UserID


@dataclass(frozen=True)
class UserRecord:
    """Minimal view of a user as exposed by the user store."""
    user_id: UserID
    username: Optional[str] = None
    created_at: Optional[datetime] = None


class UserDirectory(ABC):
    """
    Read-only access to the external user store.

    Implementations must answer from memory or a cache; both calls sit on the
    request path of the analytics endpoints.
    """

    @abstractmethod
    def get_all_users(self) -> List[UserRecord]:
        """
        Return every known user.

        Returns:
            List of user records, possibly empty
        """
        pass

    @abstractmethod
    def count_users(self) -> int:
        """
        Return the total number of known users.

        Returns:
            Non-negative user count
        """
        pass
