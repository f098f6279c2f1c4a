"""
User analytics API endpoints.

Handles:
- Activity trends
- User growth, retention and churn
- Security metrics
- Retention curves
- Behavior analysis

Each query reads the clock once; the window start and the retention walk both
derive from that reading. Durations are recorded on the service's timing
collector and surface in /health.
"""

import logging
from fastapi import APIRouter, HTTPException, Depends

from app.api.v1.schemas import (
    ActivityTrendsResponse,
    SecurityMetricsResponse,
    UserBehaviorResponse,
    UserGrowthResponse,
    UserRetentionResponse,
)
from app.core.dependencies import get_analytics_window_days, get_user_activity_service
from app.services.user_activity_service import UserActivityService

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/activity-trends", response_model=ActivityTrendsResponse)
def get_activity_trends(
    days: int = Depends(get_analytics_window_days),
    service: UserActivityService = Depends(get_user_activity_service),
):
    """Get daily active users and peak activity hours for the last `days` days."""
    try:
        logger.debug(f"Fetching activity trends for {days} days")
        with service.timings.timed("activity_trends"):
            return service.get_activity_trends(service.window_start(days))
    except Exception as e:
        logger.error(f"Error fetching activity trends: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error fetching activity trends: {str(e)}")


@router.get("/user-growth", response_model=UserGrowthResponse)
def get_user_growth(
    days: int = Depends(get_analytics_window_days),
    service: UserActivityService = Depends(get_user_activity_service),
):
    """Get new users per day with retention and churn rates."""
    try:
        logger.debug(f"Fetching user growth metrics for {days} days")
        with service.timings.timed("user_growth"):
            return service.get_user_growth_metrics(service.window_start(days))
    except Exception as e:
        logger.error(f"Error fetching user growth metrics: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error fetching user growth metrics: {str(e)}")


@router.get("/security-metrics", response_model=SecurityMetricsResponse)
def get_security_metrics(service: UserActivityService = Depends(get_user_activity_service)):
    """Get failed login counters and derived account lockouts."""
    try:
        with service.timings.timed("security_metrics"):
            return service.get_security_metrics()
    except Exception as e:
        logger.error(f"Error fetching security metrics: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error fetching security metrics: {str(e)}")


@router.get("/user-retention", response_model=UserRetentionResponse)
def get_user_retention(
    days: int = Depends(get_analytics_window_days),
    service: UserActivityService = Depends(get_user_activity_service),
):
    """Get daily, weekly and monthly retention curves."""
    try:
        logger.debug(f"Fetching user retention metrics for {days} days")
        with service.timings.timed("user_retention"):
            now = service.now()
            return service.get_user_retention_metrics(service.window_start(days, now), now)
    except Exception as e:
        logger.error(f"Error fetching user retention metrics: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error fetching user retention metrics: {str(e)}")


@router.get("/user-behavior", response_model=UserBehaviorResponse)
def get_user_behavior(
    days: int = Depends(get_analytics_window_days),
    service: UserActivityService = Depends(get_user_activity_service),
):
    """Get most active users and feature usage counts."""
    try:
        logger.debug(f"Fetching user behavior analysis for {days} days")
        with service.timings.timed("user_behavior"):
            return service.get_user_behavior_analysis(service.window_start(days))
    except Exception as e:
        logger.error(f"Error fetching user behavior analysis: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error fetching user behavior analysis: {str(e)}")
