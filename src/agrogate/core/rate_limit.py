"""Rate limiting: slowapi endpoint limits and the login brute-force guard.

Two layers:
1. Endpoint decorators (slowapi): coarse per-IP limits on mail-triggering
   endpoints such as forgot-password.
2. ``LoginGuard``: a fixed-window per-IP attempt counter and a per-account
   consecutive-failure counter that escalates to a timed lockout.

The guard fails open. If Redis is unreachable the error is logged and the
login proceeds; the primary login path outranks this secondary defense.
"""

from collections.abc import Collection

from redis.asyncio import Redis
from redis.exceptions import RedisError
from slowapi import Limiter
from slowapi.util import get_remote_address
from starlette.requests import Request

from src.agrogate.core.audit_context import get_client_ip
from src.agrogate.core.config import Settings, get_settings
from src.agrogate.core.exceptions import RateLimitedError
from src.agrogate.core.logging import get_logger

logger = get_logger(__name__)

PREFIX_LOGIN_RATE_IP = "login_rate:ip"
PREFIX_LOGIN_FAILURES = "login_failures"
PREFIX_LOGIN_BLOCK = "login_block"


def get_rate_limit_key(request: Request) -> str:
    """Generate rate limit key from client IP only.

    Do NOT include user-controlled headers in the key; rotating header values
    would create unlimited new buckets and make the limit ineffective.
    """
    return get_remote_address(request) or "unknown"


def create_limiter() -> Limiter:
    """Create the endpoint limiter backed by Redis. Disabled in testing."""
    settings = get_settings()

    if settings.app_env == "testing":
        logger.info("Rate limiter disabled (testing environment)")
        return Limiter(key_func=get_rate_limit_key, enabled=False)

    logger.info("Rate limiter using Redis backend")
    return Limiter(key_func=get_rate_limit_key, storage_uri=settings.redis_url)


# Reads settings at import time; reconfiguration needs a restart.
limiter = create_limiter()


def get_guard_address(request: Request, trusted_proxies: Collection[str]) -> str | None:
    """Address the login guard counts attempts against.

    The socket peer, unless that peer is a trusted proxy; only then is the
    first X-Forwarded-For hop used.
    """
    peer = request.client.host if request.client else None
    if peer is not None and peer in trusted_proxies:
        return get_client_ip(request.headers.get("x-forwarded-for"), peer)
    return peer


def _normalize_email(email: str) -> str:
    return email.strip().lower()


class LoginGuard:
    """Address- and account-scoped login throttling."""

    def __init__(
        self,
        redis: Redis,
        *,
        max_attempts: int,
        window_seconds: int,
        max_failures: int,
        block_seconds: int,
    ):
        self.redis = redis
        self.max_attempts = max_attempts
        self.window_seconds = window_seconds
        self.max_failures = max_failures
        self.block_seconds = block_seconds

    @classmethod
    def from_settings(cls, redis: Redis, settings: Settings) -> "LoginGuard":
        return cls(
            redis,
            max_attempts=settings.login_max_attempts_per_window,
            window_seconds=settings.login_ip_window_seconds,
            max_failures=settings.login_max_failures,
            block_seconds=settings.login_block_seconds,
        )

    async def _incr_with_ttl(self, key: str, ttl_seconds: int) -> int:
        """INCR and set the expiry in one transaction; an existing TTL is kept."""
        async with self.redis.pipeline(transaction=True) as pipe:
            pipe.incr(key)
            pipe.expire(key, ttl_seconds, nx=True)
            count, _ = await pipe.execute()
        return int(count)

    async def check_ip(self, ip: str | None) -> None:
        """Count one attempt from ``ip`` and reject once the window is exhausted.

        Raises:
            RateLimitedError: More than ``max_attempts`` in the current window.
        """
        if not ip:
            return
        key = f"{PREFIX_LOGIN_RATE_IP}:{ip}"
        try:
            count = await self._incr_with_ttl(key, self.window_seconds)
            if count <= self.max_attempts:
                return
            ttl = await self.redis.ttl(key)
        except RedisError as e:
            logger.error("Login rate check failed, allowing request", ip=ip, error=str(e))
            return

        logger.warning("Login rate limit exceeded", ip=ip, attempts=count)
        raise RateLimitedError(
            "Too many login attempts. Please try again later.",
            retry_after=ttl if ttl > 0 else self.window_seconds,
        )

    async def check_account(self, email: str) -> None:
        """Reject while the account is locked out.

        Raises:
            RateLimitedError: The account has an active lockout.
        """
        key = f"{PREFIX_LOGIN_BLOCK}:{_normalize_email(email)}"
        try:
            ttl = await self.redis.ttl(key)
        except RedisError as e:
            logger.error("Account lockout check failed, allowing request", error=str(e))
            return

        # -2: no key, -1: key without expiry (never written that way)
        if ttl == -2:
            return
        raise RateLimitedError(
            "Account temporarily locked due to too many failed attempts.",
            retry_after=ttl if ttl > 0 else self.block_seconds,
        )

    async def record_failure(self, email: str) -> None:
        """Count a failed password; lock the account once the threshold is hit."""
        normalized = _normalize_email(email)
        failures_key = f"{PREFIX_LOGIN_FAILURES}:{normalized}"
        try:
            count = await self._incr_with_ttl(failures_key, self.block_seconds)
            if count >= self.max_failures:
                async with self.redis.pipeline(transaction=True) as pipe:
                    pipe.set(f"{PREFIX_LOGIN_BLOCK}:{normalized}", "1", ex=self.block_seconds)
                    pipe.delete(failures_key)
                    await pipe.execute()
                logger.warning(
                    "Account locked after repeated failures",
                    failures=count,
                    block_seconds=self.block_seconds,
                )
        except RedisError as e:
            logger.error("Failed to record login failure", error=str(e))

    async def clear_failures(self, email: str) -> None:
        """Reset the failure counter after a successful login. The lockout key is left alone."""
        try:
            await self.redis.delete(f"{PREFIX_LOGIN_FAILURES}:{_normalize_email(email)}")
        except RedisError as e:
            logger.error("Failed to clear login failures", error=str(e))
