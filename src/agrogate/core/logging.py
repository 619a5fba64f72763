"""structlog setup and the context every log line carries.

Three layers of context are merged into each event:

- ``request_id``, bound by the request middleware;
- ``user_id`` / ``tenant_id`` (and ``user_email`` when LOG_USER_EMAILS is
  on), bound once the bearer token has been verified;
- ``db_scope``, bound for the lifetime of a Tenant Context Gate transaction:
  the tenant id the transaction is bound to, or ``bypass``.

Credential material is masked by ``redact_credentials`` before any renderer
sees the event.
"""

import logging
import sys
from collections.abc import Iterator, MutableMapping
from contextlib import contextmanager
from typing import Any
from uuid import UUID

import structlog
from structlog.contextvars import bind_contextvars, bound_contextvars, clear_contextvars

REDACTED = "[redacted]"

CREDENTIAL_KEYS = frozenset(
    {
        "password",
        "password_hash",
        "access_token",
        "refresh_token",
        "id_token",
        "token",
        "code",
        "state",
        "client_secret",
    }
)

BYPASS_SCOPE = "bypass"

_QUIET_LOGGERS = ("sqlalchemy.engine", "httpx", "httpcore", "authlib")


def redact_credentials(
    _logger: Any, _method: str, event_dict: MutableMapping[str, Any]
) -> MutableMapping[str, Any]:
    for key in CREDENTIAL_KEYS.intersection(event_dict):
        if event_dict[key] is not None:
            event_dict[key] = REDACTED
    return event_dict


def setup_logging(debug: bool = False) -> None:
    """Configure stdlib logging and structlog.

    Debug mode renders colored console lines; otherwise one JSON object per
    line goes to stdout.
    """
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=logging.DEBUG if debug else logging.INFO,
    )

    renderer: structlog.typing.Processor = (
        structlog.dev.ConsoleRenderer(colors=True)
        if debug
        else structlog.processors.JSONRenderer()
    )
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            redact_credentials,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.UnicodeDecoder(),
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


def bind_request_context(request_id: str | None) -> None:
    if request_id:
        bind_contextvars(request_id=request_id)


def bind_user_context(user_id: UUID, tenant_id: UUID, email: str | None = None) -> None:
    """Attach the authenticated caller to every later event of this request.

    The email is bound only when ``log_user_emails`` is enabled.
    """
    from src.agrogate.core.config import get_settings

    bind_contextvars(user_id=str(user_id), tenant_id=str(tenant_id))
    if email and get_settings().log_user_emails:
        bind_contextvars(user_email=email)


@contextmanager
def db_scope_context(tenant_id: UUID | str | None) -> Iterator[None]:
    """Tag events with the open gate scope; ``None`` means a bypass scope."""
    with bound_contextvars(db_scope=BYPASS_SCOPE if tenant_id is None else str(tenant_id)):
        yield


def clear_request_context() -> None:
    clear_contextvars()
