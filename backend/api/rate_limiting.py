"""
Authentication Rate Limiting Middleware

Rate limits the challenge and sign-in endpoints per client IP and blocks IPs
that keep failing authentication, to slow down challenge farming and
signature guessing.
"""
import logging
import time
from collections import defaultdict
from threading import Lock
from typing import Callable, Dict, List, Tuple

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse

logger = logging.getLogger(__name__)

# Paths subject to rate limiting
RATE_LIMITED_PREFIXES = ("/api/v1/identity/", "/api/auth/callback/")

# Paths where a 401 counts as a failed authentication
FAILED_AUTH_PREFIXES = ("/api/auth/callback/",)

FAILED_AUTH_WINDOW_SECONDS = 3600
CLEANUP_INTERVAL_SECONDS = 300
IDLE_BUCKET_SECONDS = 600


class AuthRateLimiter:
    """
    Token bucket rate limiter keyed by client IP.

    Also tracks failed authentications per IP within a one hour window.
    """

    def __init__(
        self,
        rate_per_minute: int = 30,
        burst_size: int = 10,
        max_failed_attempts: int = 20,
        trusted_ips=None,
        clock: Callable[[], float] = time.time,
    ):
        self.rate_per_minute = rate_per_minute
        self.burst_size = burst_size
        self.max_failed_attempts = max_failed_attempts
        self.trusted_ips = set(trusted_ips or ())
        self._clock = clock

        self.buckets: Dict[str, Tuple[float, float]] = {}  # ip -> (tokens, last_refill)
        self.failed_auth_attempts: Dict[str, List[float]] = defaultdict(list)  # ip -> [timestamps]
        self.lock = Lock()
        self._last_cleanup = clock()

        logger.info(
            f"Auth rate limiter initialized: {rate_per_minute} req/min per IP "
            f"(burst {burst_size}), block after {max_failed_attempts} failures/hour"
        )

    @property
    def capacity(self) -> int:
        return self.rate_per_minute + self.burst_size

    def _refill(self, tokens: float, last_refill: float, now: float) -> float:
        elapsed = max(0.0, now - last_refill)
        return min(tokens + elapsed * (self.rate_per_minute / 60.0), float(self.capacity))

    def check_rate_limit(self, ip: str) -> Tuple[bool, str]:
        """
        Check if a request from ip should be allowed.

        Returns:
            (allowed, reason) - True if allowed, False + reason if blocked
        """
        now = self._clock()
        with self.lock:
            self._maybe_cleanup(now)

            if ip not in self.trusted_ips and ip in self.failed_auth_attempts:
                recent = [
                    ts for ts in self.failed_auth_attempts[ip]
                    if now - ts < FAILED_AUTH_WINDOW_SECONDS
                ]
                self.failed_auth_attempts[ip] = recent
                if len(recent) >= self.max_failed_attempts:
                    logger.warning(f"SECURITY: IP {ip} blocked after {len(recent)} failed authentications")
                    return False, "Too many failed authentication attempts. Try again later."

            tokens, last_refill = self.buckets.get(ip, (float(self.capacity), now))
            tokens = self._refill(tokens, last_refill, now)

            if tokens < 1:
                self.buckets[ip] = (tokens, now)
                logger.warning(f"Rate limit exceeded for IP: {ip}")
                return False, f"Rate limit exceeded: {self.rate_per_minute} requests per minute"

            self.buckets[ip] = (tokens - 1, now)
            return True, ""

    def record_failed_auth(self, ip: str) -> None:
        """Record a failed authentication attempt."""
        with self.lock:
            self.failed_auth_attempts[ip].append(self._clock())
            count = len(self.failed_auth_attempts[ip])
        logger.warning(f"SECURITY: Failed authentication from IP {ip} ({count} recent)")

    def _maybe_cleanup(self, now: float) -> None:
        """Remove stale entries (caller must hold lock)."""
        if now - self._last_cleanup < CLEANUP_INTERVAL_SECONDS:
            return
        self._last_cleanup = now

        self.buckets = {
            ip: bucket for ip, bucket in self.buckets.items()
            if now - bucket[1] < IDLE_BUCKET_SECONDS
        }
        for ip in list(self.failed_auth_attempts.keys()):
            recent = [ts for ts in self.failed_auth_attempts[ip] if now - ts < FAILED_AUTH_WINDOW_SECONDS]
            if recent:
                self.failed_auth_attempts[ip] = recent
            else:
                del self.failed_auth_attempts[ip]


class AuthRateLimitMiddleware(BaseHTTPMiddleware):
    """
    Middleware applying the rate limiter stored on app.state.rate_limiter
    to the authentication endpoints.
    """

    async def dispatch(self, request: Request, call_next):
        path = request.url.path
        limiter = getattr(request.app.state, "rate_limiter", None)

        if limiter is None or not path.startswith(RATE_LIMITED_PREFIXES):
            return await call_next(request)

        client_ip = request.client.host if request.client else "unknown"

        allowed, reason = limiter.check_rate_limit(client_ip)
        if not allowed:
            logger.warning(f"Rate limit blocked: {client_ip} - {path}")
            return JSONResponse(
                status_code=429,
                content={"detail": reason, "retry_after": 60},
                headers={
                    "Retry-After": "60",
                    "X-RateLimit-Limit": str(limiter.rate_per_minute),
                    "X-RateLimit-Remaining": "0",
                },
            )

        response = await call_next(request)

        if response.status_code == 401 and path.startswith(FAILED_AUTH_PREFIXES):
            limiter.record_failed_auth(client_ip)

        return response
