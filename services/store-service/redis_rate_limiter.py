"""Redis-backed rate limiter."""
import logging
import time
from typing import Tuple
import redis
from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from auth import rate_limit_key_from_token
from monitoring import rate_limit_exceeded_counter, suspicious_activity_counter

logger = logging.getLogger(__name__)

SUSPICIOUS_WINDOW_SECONDS = 300


class RedisRateLimiter(BaseHTTPMiddleware):
    """
    Distributed rate limiter using Redis sorted sets.

    Implements dual-tier sliding window rate limiting:
    - Per IP: every request counts against the client address
    - Per user: bearer token holders are also limited individually

    Requests are allowed through when Redis is unavailable.
    """

    def __init__(
        self,
        app,
        redis_client: redis.Redis,
        requests_per_window_ip: int = 100,
        requests_per_window_user: int = 100,
        window_seconds: int = 900
    ):
        """
        Initialize Redis-backed rate limiter.

        Args:
            app: FastAPI application
            redis_client: Redis connection
            requests_per_window_ip: Max requests per IP per window
            requests_per_window_user: Max requests per user per window
            window_seconds: Sliding window size in seconds
        """
        super().__init__(app)
        self.redis = redis_client
        self.requests_per_window_ip = requests_per_window_ip
        self.requests_per_window_user = requests_per_window_user
        self.window_seconds = window_seconds

    def _check_rate_limit(
        self,
        key: str,
        limit: int,
        window: int
    ) -> Tuple[bool, int]:
        """
        Record a hit in the sorted set at ``key`` and test it against ``limit``.

        Members are request timestamps; entries older than ``window`` seconds
        are pruned before counting, and the key expires on its own once idle.

        Returns:
            Tuple of (is_allowed, hits in window including this one)
        """
        try:
            now = time.time()
            pipe = self.redis.pipeline()
            pipe.zremrangebyscore(key, 0, now - window)
            pipe.zcard(key)
            pipe.zadd(key, {str(now): now})
            pipe.expire(key, window + 1)
            _, previous_hits, _, _ = pipe.execute()

            return previous_hits < limit, previous_hits + 1

        except redis.RedisError as e:
            logger.error("Redis rate limit error", extra={"error": str(e)})
            return True, 0

    def _limited(self, limit_type: str, limit: int) -> JSONResponse:
        minutes = self.window_seconds // 60
        return JSONResponse(
            status_code=429,
            content={
                "detail": f"Too many requests, please try again later. "
                          f"Maximum {limit} requests per {minutes} minutes per {limit_type}."
            },
            headers={"Retry-After": str(self.window_seconds)}
        )

    async def dispatch(self, request: Request, call_next):
        """Apply the IP limit, then the per-token limit, then pass the request on."""
        client_ip = request.client.host if request.client else "unknown"
        if "x-forwarded-for" in request.headers:
            client_ip = request.headers["x-forwarded-for"].split(",")[0].strip()

        user_id = None
        auth_header = request.headers.get("authorization")
        if auth_header and auth_header.startswith("Bearer "):
            user_id = rate_limit_key_from_token(auth_header.split(" ", 1)[1])

        ip_allowed, ip_count = self._check_rate_limit(
            f"rate:ip:{client_ip}",
            self.requests_per_window_ip,
            self.window_seconds
        )
        if not ip_allowed:
            rate_limit_exceeded_counter.add(1, {"limit_type": "ip"})
            logger.warning("Rate limit exceeded for IP", extra={
                "client_ip": client_ip,
                "count": ip_count,
                "limit": self.requests_per_window_ip
            })
            return self._limited("IP", self.requests_per_window_ip)

        if user_id:
            user_allowed, user_count = self._check_rate_limit(
                f"rate:user:{user_id}",
                self.requests_per_window_user,
                self.window_seconds
            )
            if not user_allowed:
                rate_limit_exceeded_counter.add(1, {"limit_type": "user"})
                logger.warning("Rate limit exceeded for user", extra={
                    "user_id": user_id,
                    "count": user_count,
                    "limit": self.requests_per_window_user
                })
                return self._limited("user", self.requests_per_window_user)

        response = await call_next(request)

        self._detect_suspicious_activity(response.status_code, client_ip)

        return response

    def _record_event(self, key: str) -> int:
        current_time = time.time()
        self.redis.zadd(key, {str(current_time): current_time})
        self.redis.expire(key, SUSPICIOUS_WINDOW_SECONDS + 1)
        return self.redis.zcount(key, current_time - SUSPICIOUS_WINDOW_SECONDS, current_time)

    def _detect_suspicious_activity(self, status_code: int, client_ip: str) -> None:
        """
        Flag suspicious request patterns per client IP.

        Patterns:
        - Credential stuffing: 5+ failed auths in 5 minutes
        - Endpoint scanning: 10+ 404s in 5 minutes
        - Abuse: 20+ 4xx errors in 5 minutes
        """
        patterns = []
        if status_code == 401:
            patterns.append(("credential_stuffing", f"suspicious:401:{client_ip}", 5))
        if status_code == 404:
            patterns.append(("endpoint_scanning", f"suspicious:404:{client_ip}", 10))
        if 400 <= status_code < 500:
            patterns.append(("abuse", f"suspicious:4xx:{client_ip}", 20))

        try:
            for activity, key, threshold in patterns:
                count = self._record_event(key)
                if count >= threshold:
                    suspicious_activity_counter.add(1, {"type": activity})
                    logger.warning("Suspicious activity detected", extra={
                        "activity": activity,
                        "client_ip": client_ip,
                        "count": count,
                        "window_seconds": SUSPICIOUS_WINDOW_SECONDS
                    })
        except redis.RedisError as e:
            logger.error("Error detecting suspicious activity", extra={"error": str(e)})
