from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from asgi_correlation_id import CorrelationIdMiddleware
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from src.agrogate.api.middlewares import request_context_middleware
from src.agrogate.api.v1.router import api_router
from src.agrogate.core.config import get_settings
from src.agrogate.core.container import AppContainer, build_container
from src.agrogate.core.exceptions import setup_exception_handlers
from src.agrogate.core.health import setup_health_endpoint, setup_metrics
from src.agrogate.core.logging import get_logger, setup_logging
from src.agrogate.core.rate_limit import limiter

logger = get_logger(__name__)

OPENAPI_TAGS = [
    {"name": "auth", "description": "Login, sessions, password flows and Google sign-in"},
    {"name": "roles", "description": "Organization custom roles"},
    {"name": "org-users", "description": "Organization user administration"},
]


def create_app(container: AppContainer | None = None) -> FastAPI:
    """Build the application.

    Args:
        container: Pre-built services. When omitted, one is built from settings
            at startup and closed at shutdown; an injected container is left
            open for its owner to close.
    """
    settings = get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None]:
        """Application lifespan - startup and shutdown."""
        setup_logging(settings.debug)
        logger.info("Starting application", app_name=settings.app_name, env=settings.app_env)

        owned = container is None
        app.state.container = build_container(settings) if owned else container

        yield

        if owned:
            logger.info("Closing connections...")
            await app.state.container.aclose()
        logger.info("Shutdown complete")

    app = FastAPI(
        title=settings.app_name,
        description="Tenant isolation and authorization core",
        version="0.1.0",
        openapi_tags=OPENAPI_TAGS,
        openapi_url="/openapi.json" if settings.enable_openapi else None,
        lifespan=lifespan,
    )

    # Available before the lifespan runs, for clients that skip startup events
    if container is not None:
        app.state.container = container

    setup_exception_handlers(app)

    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)  # type: ignore[arg-type]

    app.middleware("http")(request_context_middleware)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE"],
        allow_headers=["Authorization", "Content-Type", "X-Request-ID"],
    )

    # Added last so it is the outermost middleware
    app.add_middleware(CorrelationIdMiddleware)

    app.include_router(api_router)
    setup_health_endpoint(app)
    setup_metrics(app)

    return app


app = create_app()
