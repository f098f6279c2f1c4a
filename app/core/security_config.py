"""
HTTP hardening for the analytics API.

Provides:
- Security headers on every response
- Per-client rate limiting with a temporary block once the limit trips
- CORS configuration
"""

import logging
from datetime import datetime, timezone, timedelta
from typing import Dict, Any, Callable, Deque
from collections import defaultdict, deque
from dataclasses import dataclass, field
from threading import Lock

from fastapi import Request, status
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse

from app.core.config import Settings

logger = logging.getLogger(__name__)


@dataclass
class SecurityConfig:
    """Security configuration settings."""
    allowed_origins: list = field(default_factory=list)
    enable_security_headers: bool = True
    rate_limit_enabled: bool = True
    rate_limit_requests_per_minute: int = 100
    block_duration: timedelta = timedelta(minutes=1)

    @classmethod
    def from_settings(cls, app_settings: Settings) -> "SecurityConfig":
        return cls(
            allowed_origins=list(app_settings.ALLOWED_ORIGINS),
            enable_security_headers=app_settings.ENABLE_SECURITY_HEADERS,
            rate_limit_enabled=app_settings.RATE_LIMIT_ENABLED,
            rate_limit_requests_per_minute=app_settings.RATE_LIMIT_PER_MINUTE,
            block_duration=timedelta(minutes=app_settings.RATE_LIMIT_BLOCK_MINUTES),
        )


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add security headers to all responses."""

    def __init__(self, app: Callable, config: SecurityConfig):
        super().__init__(app)
        self.config = config

    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)

        if self.config.enable_security_headers:
            # Prevent MIME type sniffing
            response.headers["X-Content-Type-Options"] = "nosniff"
            # Prevent clickjacking
            response.headers["X-Frame-Options"] = "DENY"
            response.headers["X-XSS-Protection"] = "1; mode=block"
            response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"

        return response


class RateLimitingMiddleware(BaseHTTPMiddleware):
    """Sliding one-minute rate limit per client IP."""

    PRUNE_INTERVAL = timedelta(minutes=1)

    def __init__(self, app: Callable, config: SecurityConfig):
        super().__init__(app)
        self.config = config
        self.request_times: Dict[str, Deque[datetime]] = defaultdict(deque)
        self.blocked_until: Dict[str, datetime] = {}
        self._lock = Lock()
        self._last_prune = datetime.now(timezone.utc)

    async def dispatch(self, request: Request, call_next):
        client_ip = self._get_client_ip(request)
        current_time = datetime.now(timezone.utc)
        limit = self.config.rate_limit_requests_per_minute

        with self._lock:
            if current_time - self._last_prune >= self.PRUNE_INTERVAL:
                self._prune(current_time)

            # Check if IP is temporarily blocked
            blocked_until = self.blocked_until.get(client_ip)
            if blocked_until is not None:
                if current_time < blocked_until:
                    return self._limit_response(blocked_until - current_time)
                del self.blocked_until[client_ip]

            # Drop requests older than one minute
            cutoff_time = current_time - timedelta(minutes=1)
            requests = self.request_times[client_ip]
            while requests and requests[0] < cutoff_time:
                requests.popleft()

            if len(requests) >= limit:
                self.blocked_until[client_ip] = current_time + self.config.block_duration
                logger.warning(f"Rate limit exceeded for IP: {client_ip}")
                return self._limit_response(self.config.block_duration)

            requests.append(current_time)
            remaining = limit - len(requests)

        response = await call_next(request)

        response.headers["X-RateLimit-Limit"] = str(limit)
        response.headers["X-RateLimit-Remaining"] = str(remaining)
        return response

    def _prune(self, current_time: datetime) -> None:
        """Forget clients with no request inside the window and expired blocks. Caller holds ``_lock``."""
        cutoff_time = current_time - timedelta(minutes=1)
        idle = [ip for ip, times in self.request_times.items() if not times or times[-1] < cutoff_time]
        for ip in idle:
            del self.request_times[ip]
        expired = [ip for ip, until in self.blocked_until.items() if until <= current_time]
        for ip in expired:
            del self.blocked_until[ip]
        self._last_prune = current_time
        if idle or expired:
            logger.debug(f"Rate limiter pruned {len(idle)} idle client(s), {len(expired)} expired block(s)")

    @staticmethod
    def _limit_response(retry_after: timedelta) -> JSONResponse:
        retry_seconds = max(1, int(retry_after.total_seconds()))
        return JSONResponse(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            content={"detail": "Rate limit exceeded", "retry_after": str(retry_seconds)},
            headers={"Retry-After": str(retry_seconds)},
        )

    def _get_client_ip(self, request: Request) -> str:
        """Extract client IP from request."""
        # Check for forwarded headers (when behind a proxy)
        forwarded_for = request.headers.get("X-Forwarded-For")
        if forwarded_for:
            return forwarded_for.split(",")[0].strip()

        real_ip = request.headers.get("X-Real-IP")
        if real_ip:
            return real_ip

        # Fallback to direct client IP
        return request.client.host if request.client else "unknown"


def get_cors_config(config: SecurityConfig) -> Dict[str, Any]:
    """Get CORS configuration for the configured origins."""
    allow_all = not config.allowed_origins or "*" in config.allowed_origins
    return {
        "allow_origins": ["*"] if allow_all else config.allowed_origins,
        # Credentials cannot be combined with a wildcard origin
        "allow_credentials": not allow_all,
        "allow_methods": ["GET", "POST"],
        "allow_headers": ["*"],
        "expose_headers": ["X-RateLimit-Limit", "X-RateLimit-Remaining"],
    }


def configure_security_middleware(app, app_settings: Settings) -> SecurityConfig:
    """Configure all security middleware for the application."""
    config = SecurityConfig.from_settings(app_settings)

    if config.rate_limit_enabled:
        app.add_middleware(RateLimitingMiddleware, config=config)

    # Added last so it wraps rate-limited responses too
    app.add_middleware(SecurityHeadersMiddleware, config=config)

    logger.info(
        f"Security middleware configured (rate_limit={'on' if config.rate_limit_enabled else 'off'}, "
        f"limit={config.rate_limit_requests_per_minute}/min)"
    )
    return config
