"""
Health check API.

Reports whether the activity analytics engine was built at startup, together
with the current table sizes and sweeper status.
"""

import logging
from fastapi import APIRouter, Request

from app.api.v1.schemas import HealthResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/health", tags=["health"])


@router.get("", response_model=HealthResponse)
def health_check(request: Request):
    service = getattr(request.app.state, "user_activity_service", None)
    app_name = getattr(request.app, "title", "")

    if service is None:
        logger.warning("Health check: activity analytics service not initialized")
        return HealthResponse(status="degraded", app_name=app_name)

    return HealthResponse(status="healthy", app_name=app_name, statistics=service.get_statistics())
