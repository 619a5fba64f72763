"""Typed application errors and the exception handlers that render them.

Every externally caused failure is raised as one of the ``AppError``
subclasses below. Each carries its HTTP status class so the boundary can
render it without guessing. Anything else is an unexpected failure and is
rendered as a generic 500.
"""

from asgi_correlation_id import correlation_id
from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from src.agrogate.core.logging import get_logger

logger = get_logger(__name__)


class AppError(Exception):
    """Base class for all typed application errors."""

    status_code: int = 500
    default_detail: str = "Internal server error"

    def __init__(self, detail: str | None = None, headers: dict[str, str] | None = None):
        self.detail = detail or self.default_detail
        self.headers = headers
        super().__init__(self.detail)


class AuthenticationError(AppError):
    """Bad, missing or expired credential or token."""

    status_code = 401
    default_detail = "Invalid credentials"


class AuthorizationError(AppError):
    """Insufficient role or permission."""

    status_code = 403
    default_detail = "Insufficient permission"


class TenantStateError(AppError):
    """Inactive/suspended/cancelled tenant, or inactive account."""

    status_code = 403
    default_detail = "Account is inactive"


class ValidationError(AppError):
    """Malformed admin input."""

    status_code = 400
    default_detail = "Invalid request"


class NotFoundError(AppError):
    status_code = 404
    default_detail = "Not found"


class ConflictError(AppError):
    status_code = 409
    default_detail = "Conflict"


class BusinessRuleError(AppError):
    """Well-formed request rejected by a tenant rule (seat limit, self-demotion...)."""

    status_code = 422
    default_detail = "Request cannot be processed"


class RateLimitedError(AppError):
    status_code = 429
    default_detail = "Too many requests"

    def __init__(self, detail: str | None = None, retry_after: int | None = None):
        headers = {"Retry-After": str(retry_after)} if retry_after else None
        super().__init__(detail, headers)
        self.retry_after = retry_after


class ProviderNotConfiguredError(AppError):
    status_code = 503
    default_detail = "Identity provider is not configured"


class UnexpectedError(AppError):
    """Store, network or collaborator failure."""

    status_code = 500
    default_detail = "Internal server error"


def setup_exception_handlers(app: FastAPI) -> None:
    """Configure exception handlers that include request_id in responses."""

    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
        request_id = correlation_id.get()
        if isinstance(exc, UnexpectedError):
            logger.error(
                "Unexpected error",
                detail=exc.detail,
                request_id=request_id,
                path=request.url.path,
            )
        return JSONResponse(
            status_code=exc.status_code,
            content={
                "detail": exc.detail,
                "request_id": request_id,
            },
            headers=exc.headers,
        )

    @app.exception_handler(StarletteHTTPException)
    async def starlette_exception_handler(
        request: Request, exc: StarletteHTTPException
    ) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content={
                "detail": exc.detail,
                "request_id": correlation_id.get(),
            },
        )

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content={
                "detail": exc.detail,
                "request_id": correlation_id.get(),
            },
        )

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        request_id = correlation_id.get()
        logger.exception(
            "Unhandled exception",
            exc_info=exc,
            request_id=request_id,
            path=request.url.path,
        )
        return JSONResponse(
            status_code=500,
            content={
                "detail": "Internal server error",
                "request_id": request_id,
            },
        )
