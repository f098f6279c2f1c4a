"""
Module for providing application dependencies.
Leverages FastAPI's dependency injection system and app.state for components built at startup.
"""
import logging
from typing import Optional

from fastapi import Request, HTTPException, Query, status

from app.core.config import Settings, settings
from app.infrastructure.users.in_memory_user_directory import InMemoryUserDirectory
from app.services.user_activity_service import UserActivityService

logger = logging.getLogger(__name__)


def get_app_settings(request: Request) -> Settings:
    """Settings the application was created with; falls back to the process-wide settings."""
    return getattr(request.app.state, "settings", None) or settings


def get_user_activity_service(request: Request) -> UserActivityService:
    """Retrieves the UserActivityService instance from app.state."""
    service = getattr(request.app.state, "user_activity_service", None)
    if service is None:
        logger.error("UserActivityService not found in app.state. Startup might have failed.")
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Activity analytics not available.")
    return service


def get_user_directory(request: Request) -> InMemoryUserDirectory:
    """Retrieves the user directory instance from app.state."""
    directory = getattr(request.app.state, "user_directory", None)
    if directory is None:
        logger.error("User directory not found in app.state. Startup might have failed.")
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="User directory not available.")
    return directory


def get_analytics_window_days(
    request: Request,
    days: Optional[int] = Query(None, description="Number of days to analyze"),
) -> int:
    """
    Resolve the ``days`` query parameter against the application's window bounds.

    Missing values take ANALYTICS_DEFAULT_DAYS; values outside
    1..ANALYTICS_MAX_DAYS are rejected with 422.
    """
    app_settings = get_app_settings(request)
    if days is None:
        return app_settings.ANALYTICS_DEFAULT_DAYS
    if not 1 <= days <= app_settings.ANALYTICS_MAX_DAYS:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=f"days must be between 1 and {app_settings.ANALYTICS_MAX_DAYS}",
        )
    return days
