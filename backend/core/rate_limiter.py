"""Rate limiting for the order sync API.

Fixed-window counters in Redis keyed by caller and endpoint. The sync
endpoint gets its own, higher ceiling: a device coming back online may
legitimately flush hundreds of queued orders in a few requests.
"""

import time
import logging
from typing import Optional, Dict, Any, Tuple

import redis
from fastapi import Request, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response

from core.config import get_settings
from core.auth import verify_token

logger = logging.getLogger(__name__)

EXEMPT_PATHS = {"/health", "/docs", "/redoc", "/openapi.json"}


class RateLimitConfig:
    """Per-endpoint limits (requests per window)"""

    DEFAULT_ANONYMOUS_LIMIT = 30

    def __init__(self, settings=None):
        settings = settings or get_settings()
        self.window = settings.rate_limit_window_seconds
        self.default_authenticated_limit = settings.default_rate_limit
        self.endpoint_limits = {
            "/orders/sync": {
                "anonymous": 0,
                "authenticated": settings.SYNC_RATE_LIMIT_PER_MINUTE,
            },
        }

    def limit_for(self, path: str, identifier_type: str) -> int:
        config = self.endpoint_limits.get(path.rstrip("/"))
        if identifier_type == "user":
            if config:
                return config["authenticated"]
            return self.default_authenticated_limit
        if config:
            return config["anonymous"]
        return self.DEFAULT_ANONYMOUS_LIMIT


class RateLimiter:
    """Fixed-window rate limiter backed by Redis"""

    def __init__(self, redis_client: Optional[redis.Redis] = None):
        self.redis_client = redis_client or self._get_redis_client()

    def _get_redis_client(self) -> redis.Redis:
        settings = get_settings()
        if settings.redis_url:
            return redis.Redis.from_url(settings.redis_url, decode_responses=True)
        return redis.Redis(
            host=settings.REDIS_HOST,
            port=settings.REDIS_PORT,
            db=settings.REDIS_DB,
            password=settings.REDIS_PASSWORD,
            decode_responses=True,
            socket_timeout=1,
            socket_connect_timeout=1,
        )

    def _get_key(self, identifier: str, endpoint: str, window: int) -> str:
        window_start = int(time.time() // window) * window
        return f"rate_limit:{endpoint}:{identifier}:{window_start}"

    def check_rate_limit(
        self, identifier: str, endpoint: str, limit: int, window: int = 60
    ) -> Tuple[bool, Dict[str, Any]]:
        """
        Count one request and report whether it fits in the window.

        A limit of 0 means the endpoint is closed for this identifier type.
        """
        window_start = int(time.time() // window) * window
        reset_time = window_start + window

        if limit == 0:
            return False, {"limit": 0, "remaining": 0, "reset": reset_time}

        try:
            key = self._get_key(identifier, endpoint, window)
            pipe = self.redis_client.pipeline()
            pipe.incr(key)
            pipe.expire(key, window)
            current_count = pipe.execute()[0]
        except redis.RedisError as e:
            logger.error(f"Redis error in rate limiting: {e}")
            # Fail open on Redis errors
            return True, {"error": "Rate limiting unavailable"}

        metadata = {
            "limit": limit,
            "remaining": max(0, limit - current_count),
            "reset": reset_time,
            "current": current_count,
        }
        return current_count <= limit, metadata

    @staticmethod
    def get_rate_limit_headers(metadata: Dict[str, Any]) -> Dict[str, str]:
        headers = {}
        if "limit" in metadata:
            headers["X-RateLimit-Limit"] = str(metadata["limit"])
        if "remaining" in metadata:
            headers["X-RateLimit-Remaining"] = str(metadata["remaining"])
        if metadata.get("reset"):
            headers["X-RateLimit-Reset"] = str(metadata["reset"])
        return headers


class RateLimitMiddleware(BaseHTTPMiddleware):
    """FastAPI middleware for rate limiting"""

    def __init__(
        self,
        app,
        rate_limiter: Optional[RateLimiter] = None,
        config: Optional[RateLimitConfig] = None,
    ):
        super().__init__(app)
        self.rate_limiter = rate_limiter or RateLimiter()
        self.config = config or RateLimitConfig()

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        if request.url.path in EXEMPT_PATHS:
            return await call_next(request)

        identifier, identifier_type = self._get_identifier(request)
        limit = self.config.limit_for(request.url.path, identifier_type)

        allowed, metadata = self.rate_limiter.check_rate_limit(
            identifier=identifier,
            endpoint=request.url.path,
            limit=limit,
            window=self.config.window,
        )

        if not allowed:
            logger.warning(
                f"Rate limit exceeded for {identifier} on {request.url.path} "
                f"(current: {metadata.get('current')}, limit: {metadata.get('limit')})"
            )
            return JSONResponse(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                content={
                    "detail": "Rate limit exceeded",
                    "error_code": "RATE_LIMITED",
                    "path": str(request.url.path),
                },
                headers=self.rate_limiter.get_rate_limit_headers(metadata),
            )

        response = await call_next(request)
        for key, value in self.rate_limiter.get_rate_limit_headers(metadata).items():
            response.headers[key] = value
        return response

    def _get_identifier(self, request: Request) -> Tuple[str, str]:
        """Authenticated callers are counted per user, others per IP"""
        authorization = request.headers.get("Authorization", "")
        if authorization.lower().startswith("bearer "):
            token_data = verify_token(authorization[7:])
            if token_data and token_data.user_id is not None:
                return f"user:{token_data.user_id}", "user"

        client_ip = request.client.host if request.client else "unknown"
        forwarded_for = request.headers.get("X-Forwarded-For")
        if forwarded_for:
            client_ip = forwarded_for.split(",")[0].strip()

        return f"ip:{client_ip}", "ip"
