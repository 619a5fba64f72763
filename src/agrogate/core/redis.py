"""Redis client construction and liveness probing.

The client is created once by the composition root (see ``core.container``)
and shared by every flow. Nothing in this module keeps global state.
"""

import asyncio
import time
from dataclasses import dataclass

from redis.asyncio import ConnectionPool, Redis

from src.agrogate.core.config import Settings
from src.agrogate.core.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class ProbeResult:
    """Outcome of a dependency liveness probe."""

    healthy: bool
    response_time_ms: float
    error: str | None = None

    @property
    def status(self) -> str:
        return "healthy" if self.healthy else "unhealthy"


def create_redis(settings: Settings) -> Redis:
    """Create the process-wide Redis client with a bounded connection pool.

    The connection is established lazily on the first command.
    """
    pool = ConnectionPool.from_url(
        settings.redis_url,
        max_connections=settings.redis_pool_size,
        decode_responses=True,  # Return strings instead of bytes
    )
    return Redis(connection_pool=pool)


async def close_redis(redis: Redis) -> None:
    """Close the Redis client and its pool. Called during application shutdown."""
    await redis.aclose()
    await redis.connection_pool.disconnect()
    logger.info("Redis connection closed")


async def probe_redis(redis: Redis, timeout: float) -> ProbeResult:
    """Ping Redis with an explicit deadline.

    Never raises and never waits longer than ``timeout`` seconds; an
    unreachable or slow server yields an unhealthy result.
    """
    start = time.perf_counter()
    try:
        await asyncio.wait_for(redis.ping(), timeout=timeout)  # type: ignore[arg-type]
    except TimeoutError:
        elapsed = (time.perf_counter() - start) * 1000
        return ProbeResult(False, elapsed, f"Connection timeout after {timeout}s")
    except Exception as e:
        elapsed = (time.perf_counter() - start) * 1000
        return ProbeResult(False, elapsed, str(e))
    return ProbeResult(True, (time.perf_counter() - start) * 1000)
