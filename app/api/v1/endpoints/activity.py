"""
Activity recording API endpoints.

Handles:
- Login attempt outcomes
- User activity events
- Manual retention sweep trigger
"""

import logging
from fastapi import APIRouter, Depends, HTTPException

from app.api.v1.schemas import (
    ActivityEventRequest,
    LoginAttemptRequest,
    RecordedResponse,
    RetentionSweepResponse,
)
from app.common_types import ActivityLabel, UserID, Username
from app.core.dependencies import get_user_activity_service, get_user_directory
from app.infrastructure.users.in_memory_user_directory import InMemoryUserDirectory
from app.services.user_activity_service import UserActivityService

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/login-attempts", response_model=RecordedResponse)
def record_login_attempt(
    request: LoginAttemptRequest,
    service: UserActivityService = Depends(get_user_activity_service),
):
    """Record the outcome of a login attempt."""
    service.record_login_attempt(Username(request.username), request.success)
    return RecordedResponse()


@router.post("/events", response_model=RecordedResponse)
def record_activity_event(
    request: ActivityEventRequest,
    service: UserActivityService = Depends(get_user_activity_service),
    user_directory: InMemoryUserDirectory = Depends(get_user_directory),
):
    """Record an activity label for a user."""
    user_id = UserID(request.user_id)
    user_directory.ensure_user(user_id)
    service.record_activity(user_id, ActivityLabel(request.label))
    return RecordedResponse()


@router.post("/retention-sweep", response_model=RetentionSweepResponse)
def trigger_retention_sweep(service: UserActivityService = Depends(get_user_activity_service)):
    """Run a retention sweep now instead of waiting for the scheduled one."""
    try:
        result = service.run_retention_sweep()
        return result.to_dict()
    except Exception as e:
        logger.error(f"Error running retention sweep: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error running retention sweep: {str(e)}")
