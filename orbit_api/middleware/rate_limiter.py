# orbit_api/middleware/rate_limiter.py
from __future__ import annotations

import hashlib
import time
from typing import Tuple

from fastapi import Request, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from orbit_api.core.config import settings
from orbit_api.core.exceptions import RateLimitError
from orbit_api.core.logging import get_structlog_logger
from orbit_api.services.redis import get_redis_client

logger = get_structlog_logger(__name__)


class RateLimitingMiddleware(BaseHTTPMiddleware):
    """Fixed-window rate limiting backed by Redis. Fails open when Redis is down."""

    def __init__(self, app):
        super().__init__(app)
        self.redis = None
        self.rate_limit_requests = settings.rate_limit_requests
        self.rate_limit_period = settings.rate_limit_period

        self.exempt_paths = [
            "/metrics",
            "/docs",
            "/redoc",
            "/openapi.json",
            f"{settings.api_prefix}/health",
            f"{settings.api_prefix}/health/live",
            f"{settings.api_prefix}/health/ready",
        ]

    async def dispatch(self, request: Request, call_next):
        if request.url.path in self.exempt_paths:
            return await call_next(request)

        client_id = self._get_client_id(request)
        allowed, remaining, reset_time = await self._check_rate_limit(client_id, request)

        if not allowed:
            retry_after = max(0, reset_time - int(time.time()))
            logger.warning(
                "rate_limit.exceeded",
                client_id=client_id,
                path=request.url.path,
                method=request.method,
                retry_after=retry_after,
            )

            error = RateLimitError(
                message="Rate limit exceeded",
                retry_after=retry_after,
                details={
                    "limit": self.rate_limit_requests,
                    "period": self.rate_limit_period,
                    "retry_after": retry_after,
                },
            )
            return JSONResponse(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                content=error.to_dict(),
                headers={"Retry-After": str(retry_after)},
            )

        response = await call_next(request)

        response.headers["X-RateLimit-Limit"] = str(self.rate_limit_requests)
        response.headers["X-RateLimit-Remaining"] = str(remaining)
        response.headers["X-RateLimit-Reset"] = str(reset_time)

        return response

    def _get_client_id(self, request: Request) -> str:
        """Get unique client identifier."""
        auth_header = request.headers.get("Authorization")
        if auth_header and auth_header.startswith("Bearer "):
            # Hash so raw tokens never become Redis keys
            digest = hashlib.sha256(auth_header[7:].encode()).hexdigest()[:32]
            return f"token:{digest}"

        client_ip = request.client.host if request.client else "unknown"
        forwarded_for = request.headers.get("X-Forwarded-For")
        if forwarded_for:
            client_ip = forwarded_for.split(",")[0].strip()

        return f"ip:{client_ip}"

    async def _check_rate_limit(
        self,
        client_id: str,
        request: Request
    ) -> Tuple[bool, int, int]:
        """Check if client has exceeded rate limit."""
        key = f"ratelimit:{client_id}:{int(time.time() // self.rate_limit_period)}"

        try:
            if not self.redis:
                self.redis = await get_redis_client()

            async with self.redis.pipeline(transaction=True) as pipe:
                pipe.incr(key)
                pipe.expire(key, self.rate_limit_period)
                results = await pipe.execute()
                current_count = results[0]

            remaining = max(0, self.rate_limit_requests - current_count)
            reset_time = int((time.time() // self.rate_limit_period + 1) * self.rate_limit_period)

            return current_count <= self.rate_limit_requests, remaining, reset_time

        except Exception as e:
            logger.error("rate_limit.error", error=str(e), client_id=client_id[:50], path=request.url.path)
            return True, self.rate_limit_requests, int(time.time() + self.rate_limit_period)
