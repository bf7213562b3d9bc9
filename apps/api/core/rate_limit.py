"""
Rate Limiting Middleware

Fixed-window counter per client IP and endpoint, stored in Redis.
The model-calling endpoints get tighter limits than plain CRUD.
Fails open when Redis is unavailable.
"""
import time
import logging
from typing import Dict, Tuple
from fastapi import Request, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from core.config import settings
from core.redis_client import get_redis_client

logger = logging.getLogger(__name__)

EXEMPT_PATHS = {"/health", "/health/detailed", "/ping", "/docs", "/openapi.json", "/redoc"}


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Rate limiting middleware (requests per window, per client IP)."""

    def __init__(self, app, default_limit: int = 60, window: int = 60):
        super().__init__(app)
        self.default_limit = default_limit
        self.window = window  # seconds

        # Every hit on these costs an upstream model call.
        self.endpoint_limits: Dict[str, int] = {
            "/api/running-chat": 20,
            "/api/chat": 20,
            "/api/image-generation": 5,
            "/api/vision": 10,
        }

    async def dispatch(self, request: Request, call_next):
        if not settings.RATE_LIMIT_ENABLED:
            return await call_next(request)

        if request.url.path in EXEMPT_PATHS:
            return await call_next(request)

        client_id = self._get_client_id(request)
        limit = self._get_endpoint_limit(request.url.path)

        allowed, remaining, reset_time = self._check_rate_limit(
            client_id=client_id,
            endpoint=request.url.path,
            limit=limit,
            window=self.window,
        )

        if not allowed:
            logger.info(f"Rate limit exceeded for {client_id} on {request.url.path}")
            return JSONResponse(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                content={
                    "error": "Rate limit exceeded",
                    "limit": limit,
                    "window": self.window,
                    "reset_at": reset_time,
                },
                headers={
                    "X-RateLimit-Limit": str(limit),
                    "X-RateLimit-Remaining": str(remaining),
                    "X-RateLimit-Reset": str(reset_time),
                    "Retry-After": str(max(0, int(reset_time - time.time()))),
                },
            )

        response = await call_next(request)
        response.headers["X-RateLimit-Limit"] = str(limit)
        response.headers["X-RateLimit-Remaining"] = str(remaining)
        response.headers["X-RateLimit-Reset"] = str(reset_time)
        return response

    def _get_client_id(self, request: Request) -> str:
        """No accounts: clients are told apart by IP (first hop of X-Forwarded-For behind a proxy)."""
        forwarded = request.headers.get("x-forwarded-for", "")
        if forwarded:
            return f"ip:{forwarded.split(',')[0].strip()}"
        client_ip = request.client.host if request.client else "unknown"
        return f"ip:{client_ip}"

    def _get_endpoint_limit(self, path: str) -> int:
        if path in self.endpoint_limits:
            return self.endpoint_limits[path]
        return self.default_limit

    def _check_rate_limit(
        self,
        client_id: str,
        endpoint: str,
        limit: int,
        window: int,
    ) -> Tuple[bool, int, int]:
        """
        Returns:
            (allowed, remaining, reset_time)
        """
        redis_client = get_redis_client()

        if not redis_client:
            return True, limit, int(time.time()) + window

        key = f"rate_limit:{client_id}:{endpoint}"

        try:
            count = redis_client.incr(key)
            if count == 1:
                redis_client.expire(key, window)

            ttl = redis_client.ttl(key)
            reset_time = int(time.time()) + (ttl if ttl > 0 else window)

            if count > limit:
                return False, 0, reset_time
            return True, max(0, limit - count), reset_time

        except Exception as e:
            # Fail open
            logger.error(f"Rate limit check error: {e}")
            return True, limit, int(time.time()) + window
