from pydantic import Field
from pydantic_settings import BaseSettings
from typing import List


class Settings(BaseSettings):
    APP_NAME: str = "User Activity Analytics"
    API_V1_PREFIX: str = "/api/v1"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # Analytics engine
    ACCOUNT_LOCKOUT_THRESHOLD: int = Field(default=5, ge=1, description="Consecutive failed logins counted as an account lockout.")
    MOST_ACTIVE_USERS_LIMIT: int = Field(default=10, ge=1, description="Number of users reported in mostActiveUsers.")
    AVERAGE_SESSION_DURATION_MINUTES: float = Field(default=30.0, description="Placeholder reported as averageSessionDuration; sessions are not tracked.")

    # Retention sweep
    ACTIVITY_RETENTION_MONTHS: int = Field(default=1, ge=1, description="Activity older than this many calendar months is evicted.")
    START_RETENTION_SWEEP: bool = True
    RETENTION_SWEEP_INTERVAL_SECONDS: int = Field(default=86400, gt=0)

    # Query windows accepted by the analytics endpoints
    ANALYTICS_DEFAULT_DAYS: int = 30
    ANALYTICS_MAX_DAYS: int = 365

    # HTTP hardening
    ALLOWED_ORIGINS: List[str] = Field(default_factory=lambda: ["*"])
    ENABLE_SECURITY_HEADERS: bool = True
    RATE_LIMIT_ENABLED: bool = True
    RATE_LIMIT_PER_MINUTE: int = Field(default=100, gt=0)
    RATE_LIMIT_BLOCK_MINUTES: int = Field(default=1, ge=0)

    model_config = { # Pydantic V2 uses model_config instead of Config class
        "extra": "ignore",
        "env_file": ".env",
        "env_file_encoding": "utf-8"
    }

settings = Settings()
