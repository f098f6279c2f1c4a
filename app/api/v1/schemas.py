from pydantic import BaseModel, Field
from typing import Dict, List, Optional, Any


# --- Activity recording ---

class LoginAttemptRequest(BaseModel):
    username: str = Field(..., description="Login name as submitted; may be empty.")
    success: bool = Field(..., description="Whether the attempt authenticated.")


class ActivityEventRequest(BaseModel):
    user_id: int = Field(..., description="Identifier of the acting user.")
    label: str = Field(..., description="Activity label, e.g. 'LOGIN' or 'VIEW_PROFILE'.")


class RecordedResponse(BaseModel):
    status: str = "recorded"


class RetentionSweepResponse(BaseModel):
    cutoff: str = Field(..., description="ISO-8601 cutoff; activity strictly before it was evicted.")
    evicted_users: int
    orphaned_activity_logs: int
    skipped: bool = Field(False, description="True when another sweep was already running.")


# --- Analytics results ---

class ActivityTrendsResponse(BaseModel):
    dailyActiveUsers: Dict[str, int] = Field(..., description="Day start (ISO-8601) -> users last active that day.")
    peakActivityHours: Dict[int, int] = Field(..., description="Hour of day (0-23) -> last-activity count.")
    averageSessionDuration: float


class UserGrowthResponse(BaseModel):
    newUsers: Dict[str, int]
    userRetentionRate: float
    churnRate: float


class SecurityMetricsResponse(BaseModel):
    failedLoginAttempts: Dict[str, int]
    suspiciousActivities: List[Dict[str, Any]] = Field(default_factory=list)
    accountLockouts: int


class UserRetentionResponse(BaseModel):
    dailyRetention: Dict[str, float]
    weeklyRetention: Dict[str, float]
    monthlyRetention: Dict[str, float]


class ActiveUser(BaseModel):
    userId: int
    activityCount: int


class UserBehaviorResponse(BaseModel):
    mostActiveUsers: List[ActiveUser]
    commonUserPaths: List[str] = Field(default_factory=list)
    featureUsage: Dict[str, int]


class HealthResponse(BaseModel):
    status: str
    app_name: str
    statistics: Optional[Dict[str, Any]] = None
