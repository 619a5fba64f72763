"""Request context middleware.

Binds the correlation id to structlog and fills the audit context (client
IP, user agent, request id) for the lifetime of one request.
"""

from asgi_correlation_id import correlation_id
from fastapi import Request, Response
from starlette.middleware.base import RequestResponseEndpoint

from src.agrogate.core.audit_context import clear_audit_context, get_client_ip, set_audit_context
from src.agrogate.core.logging import bind_request_context, clear_request_context


async def request_context_middleware(
    request: Request, call_next: RequestResponseEndpoint
) -> Response:
    clear_request_context()
    clear_audit_context()

    request_id = correlation_id.get()
    bind_request_context(request_id)
    set_audit_context(
        ip_address=get_client_ip(
            request.headers.get("x-forwarded-for"),
            request.client.host if request.client else None,
        ),
        user_agent=request.headers.get("user-agent"),
        request_id=request_id,
    )

    try:
        return await call_next(request)
    finally:
        clear_audit_context()
        clear_request_context()
