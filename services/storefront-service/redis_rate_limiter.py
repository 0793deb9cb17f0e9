"""Redis-backed rate limiter."""
import logging
import time
from typing import Optional, Tuple
import redis
from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from auth import extract_bearer_token
from monitoring import rate_limit_exceeded_counter, suspicious_activity_counter
from security import decode_access_token

logger = logging.getLogger(__name__)

SUSPICIOUS_WINDOW_SECONDS = 300

# status code predicate, pattern name, threshold within the window
SUSPICIOUS_PATTERNS = [
    (lambda status: status == 401, "credential_stuffing", 5),
    (lambda status: status == 404, "endpoint_scanning", 10),
    (lambda status: 400 <= status < 500, "abuse", 20),
]


class RedisRateLimiter(BaseHTTPMiddleware):
    """
    Distributed rate limiter using Redis sorted sets as sliding windows.

    Two tiers are enforced:
    - Per IP: high limit, tolerates many users behind one address
    - Per user: lower limit keyed on the authenticated user id

    Redis outages fail open so the storefront keeps serving.
    """

    def __init__(
        self,
        app,
        redis_client: redis.Redis,
        requests_per_minute_ip: int = 50000,
        requests_per_minute_user: int = 5000,
        window_seconds: int = 60
    ):
        """
        Initialize Redis-backed rate limiter.

        Args:
            app: FastAPI application
            redis_client: Redis connection
            requests_per_minute_ip: Max requests per IP per window
            requests_per_minute_user: Max requests per user per window
            window_seconds: Sliding window size in seconds
        """
        super().__init__(app)
        self.redis = redis_client
        self.requests_per_minute_ip = requests_per_minute_ip
        self.requests_per_minute_user = requests_per_minute_user
        self.window_seconds = window_seconds

    def _check_rate_limit(
        self,
        key: str,
        limit: int,
        window: int
    ) -> Tuple[bool, int]:
        """
        Check rate limit using Redis sorted set (sliding window).

        Args:
            key: Redis key for this limit (e.g., "rate:ip:192.168.1.1")
            limit: Maximum requests allowed
            window: Time window in seconds

        Returns:
            Tuple of (is_allowed, current_count)
        """
        try:
            current_time = time.time()
            pipe = self.redis.pipeline()
            pipe.zremrangebyscore(key, 0, current_time - window)
            pipe.zcard(key)
            pipe.zadd(key, {str(current_time): current_time})
            pipe.expire(key, window + 1)
            results = pipe.execute()

            # Count before the current request was added
            count = results[1]
            return count < limit, count + 1

        except redis.RedisError as e:
            logger.error(f"Redis rate limit error: {e}")
            return True, 0

    @staticmethod
    def _client_ip(request: Request) -> str:
        forwarded = request.headers.get("x-forwarded-for")
        if forwarded:
            return forwarded.split(",")[0].strip()
        return request.client.host if request.client else "unknown"

    @staticmethod
    def _user_id(request: Request) -> Optional[str]:
        token = extract_bearer_token(request.headers.get("authorization"))
        if token is None:
            return None
        payload = decode_access_token(token)
        if payload is None:
            return None
        return payload.get("sub")

    def _reject(self, limit_type: str, limit: int) -> JSONResponse:
        return JSONResponse(
            status_code=429,
            content={"detail": f"Rate limit exceeded for {limit_type}. Maximum {limit} requests per minute."},
            headers={"Retry-After": str(self.window_seconds)}
        )

    async def dispatch(self, request: Request, call_next):
        """
        Process request with dual-tier rate limiting.

        Returns:
            Response, or 429 if rate limited
        """
        client_ip = self._client_ip(request)
        user_id = self._user_id(request)

        ip_allowed, ip_count = self._check_rate_limit(
            f"rate:ip:{client_ip}",
            self.requests_per_minute_ip,
            self.window_seconds
        )
        if not ip_allowed:
            rate_limit_exceeded_counter.add(1, {"limit_type": "ip"})
            logger.warning("Rate limit exceeded", extra={
                "limit_type": "ip",
                "client_ip": client_ip,
                "count": ip_count,
                "limit": self.requests_per_minute_ip
            })
            return self._reject("IP", self.requests_per_minute_ip)

        if user_id:
            user_allowed, user_count = self._check_rate_limit(
                f"rate:user:{user_id}",
                self.requests_per_minute_user,
                self.window_seconds
            )
            if not user_allowed:
                rate_limit_exceeded_counter.add(1, {"limit_type": "user"})
                logger.warning("Rate limit exceeded", extra={
                    "limit_type": "user",
                    "user_id": user_id,
                    "count": user_count,
                    "limit": self.requests_per_minute_user
                })
                return self._reject("user", self.requests_per_minute_user)

        response = await call_next(request)
        self._detect_suspicious_activity(response.status_code, client_ip)
        return response

    def _detect_suspicious_activity(self, status_code: int, client_ip: str) -> None:
        """Flag bursts of 4xx responses from one IP."""
        try:
            current_time = time.time()
            window = SUSPICIOUS_WINDOW_SECONDS
            for matches, pattern, threshold in SUSPICIOUS_PATTERNS:
                if not matches(status_code):
                    continue
                key = f"suspicious:{pattern}:{client_ip}"
                self.redis.zadd(key, {str(current_time): current_time})
                self.redis.expire(key, window + 1)

                count = self.redis.zcount(key, current_time - window, current_time)
                if count >= threshold:
                    suspicious_activity_counter.add(1, {"type": pattern})
                    logger.warning("Suspicious activity detected", extra={
                        "type": pattern,
                        "client_ip": client_ip,
                        "count": count
                    })

        except redis.RedisError as e:
            logger.error(f"Error detecting suspicious activity: {e}")
