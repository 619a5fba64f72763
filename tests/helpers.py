"""Shared test helpers."""

import re

from src.agrogate.core.notifications import MailSender
from src.agrogate.core.security import create_access_token
from src.agrogate.models import User


def bearer(user: User) -> dict[str, str]:
    """Authorization header carrying a fresh access token for ``user``."""
    token = create_access_token(user.id, user.email, user.role, user.tenant_id)
    return {"Authorization": f"Bearer {token}"}


def token_from_mail(mailer: MailSender) -> str:
    """Extract the link token from the last email sent through a mocked sender."""
    text = mailer.send.call_args.args[2]  # type: ignore[attr-defined]
    match = re.search(r"token=([\w-]+)", text)
    assert match is not None, text
    return match.group(1)
