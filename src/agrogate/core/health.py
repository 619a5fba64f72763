"""Health check and metrics endpoints."""

import asyncio
import secrets
import time
from typing import Any

from fastapi import Depends, FastAPI, HTTPException, Request, status
from fastapi.responses import JSONResponse
from fastapi.security import APIKeyHeader
from prometheus_fastapi_instrumentator import Instrumentator
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine

from src.agrogate.core.config import get_settings
from src.agrogate.core.redis import ProbeResult, probe_redis


async def probe_database(engine: AsyncEngine, timeout: float) -> ProbeResult:
    """Run ``SELECT 1`` with a deadline. Never raises."""

    async def ping() -> None:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))

    start = time.perf_counter()
    try:
        await asyncio.wait_for(ping(), timeout=timeout)
    except TimeoutError:
        elapsed = (time.perf_counter() - start) * 1000
        return ProbeResult(False, elapsed, f"Connection timeout after {timeout}s")
    except Exception as e:
        elapsed = (time.perf_counter() - start) * 1000
        return ProbeResult(False, elapsed, str(e))
    return ProbeResult(True, (time.perf_counter() - start) * 1000)


def setup_health_endpoint(app: FastAPI) -> None:
    """Configure the health check endpoint."""

    @app.get("/health")
    async def health(request: Request) -> JSONResponse:
        """Database and Redis liveness. 503 when either is down."""
        container = request.app.state.container
        timeout = container.settings.redis_probe_timeout_seconds

        database, redis = await asyncio.gather(
            probe_database(container.engine, timeout),
            probe_redis(container.redis, timeout),
        )

        body: dict[str, Any] = {
            "status": "healthy" if database.healthy and redis.healthy else "unhealthy",
            "database": database.status,
            "redis": redis.status,
            "timestamp": time.time(),
        }
        for name, result in (("database", database), ("redis", redis)):
            if result.error:
                body[f"{name}_error"] = result.error

        status_code = 200 if body["status"] == "healthy" else 503
        return JSONResponse(content=body, status_code=status_code)


def setup_metrics(app: FastAPI) -> None:
    """Configure Prometheus metrics with optional API key protection."""
    settings = get_settings()
    instrumentator = Instrumentator().instrument(app)

    if settings.metrics_api_key:
        api_key_header = APIKeyHeader(name="X-Metrics-Key", auto_error=False)

        async def verify_metrics_key(
            api_key: str | None = Depends(api_key_header),
        ) -> None:
            if (
                api_key is None
                or settings.metrics_api_key is None
                or not secrets.compare_digest(api_key, settings.metrics_api_key)
            ):
                raise HTTPException(
                    status_code=status.HTTP_401_UNAUTHORIZED,
                    detail="Invalid or missing metrics API key",
                )

        instrumentator.expose(app, endpoint="/metrics", dependencies=[Depends(verify_metrics_key)])
    else:
        instrumentator.expose(app, endpoint="/metrics")
