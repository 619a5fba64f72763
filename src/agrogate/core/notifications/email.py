"""Email client using Resend API."""

import asyncio
import html
from concurrent.futures import ThreadPoolExecutor

import resend

from src.agrogate.core.config import Settings
from src.agrogate.core.exceptions import UnexpectedError
from src.agrogate.core.logging import get_logger

logger = get_logger(__name__)

# Shared email styles
_BODY_STYLE = (
    "font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif; "
    "line-height: 1.6; color: #333; max-width: 600px; margin: 0 auto; padding: 20px;"
)
_BUTTON_STYLE = (
    "background-color: #15803d; color: white; padding: 12px 24px; "
    "text-decoration: none; border-radius: 6px; display: inline-block; font-weight: 500;"
)
_LINK_STYLE = "color: #15803d; word-break: break-all;"
_MUTED_STYLE = "color: #666; font-size: 14px;"


class MailSender:
    """Sends transactional mail through Resend.

    Without ``RESEND_API_KEY`` (local development) messages are logged and
    dropped. Delivery failures surface as ``UnexpectedError`` so the caller
    issuing an invite or reset knows the mail never left.
    """

    def __init__(self, settings: Settings, executor: ThreadPoolExecutor | None = None):
        self.api_key = settings.resend_api_key
        self.sender = settings.email_from
        self.timeout = settings.email_send_timeout_seconds
        self._executor = executor or ThreadPoolExecutor(
            max_workers=4, thread_name_prefix="email_sender"
        )

    async def send(self, to: str, subject: str, text: str, html_body: str | None = None) -> None:
        if not self.api_key:
            logger.warning("RESEND_API_KEY not set - email not sent", to=to, subject=subject)
            return

        params: dict[str, object] = {
            "from": self.sender,
            "to": [to],
            "subject": subject,
            "text": text,
        }
        if html_body:
            params["html"] = html_body

        def _send() -> None:
            resend.api_key = self.api_key
            resend.Emails.send(params)  # type: ignore[arg-type]

        loop = asyncio.get_running_loop()
        try:
            # Thread pool with timeout so a slow API response cannot hang the request
            await asyncio.wait_for(loop.run_in_executor(self._executor, _send), self.timeout)
        except TimeoutError as e:
            logger.error("Email send timed out", to=to, timeout=self.timeout)
            raise UnexpectedError("Failed to send email") from e
        except Exception as e:
            logger.error("Failed to send email", to=to, subject=subject, error=str(e))
            raise UnexpectedError("Failed to send email") from e

        logger.info("Email sent", to=to, subject=subject)

    def shutdown(self) -> None:
        self._executor.shutdown(wait=False, cancel_futures=True)


def _wrap_html(heading: str, body: str) -> str:
    return f"""<!DOCTYPE html>
<html>
<head>
    <meta charset="utf-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
</head>
<body style="{_BODY_STYLE}">
    <h1 style="color: #15803d; margin-bottom: 24px;">{heading}</h1>
{body}
</body>
</html>"""


def _action_block(url: str, label: str) -> str:
    return f"""    <p style="margin: 32px 0;">
        <a href="{url}" style="{_BUTTON_STYLE}">{label}</a>
    </p>
    <p style="{_MUTED_STYLE}">
        Or copy and paste this link into your browser:<br>
        <a href="{url}" style="{_LINK_STYLE}">{url}</a>
    </p>"""


def build_invite_email(
    tenant_name: str, user_name: str, invite_url: str, expires_days: int
) -> tuple[str, str, str]:
    """Return (subject, text, html) for an organization invite."""
    safe_tenant = html.escape(tenant_name)
    safe_user = html.escape(user_name)
    subject = f"You've been invited to join {tenant_name}"
    text = (
        f"Hi {user_name},\n\n"
        f"You have been invited to join {tenant_name}. "
        f"Set your password to get started:\n\n{invite_url}\n\n"
        f"This invitation expires in {expires_days} days."
    )
    body = f"""    <p>Hi {safe_user},</p>
    <p>You have been invited to join <strong>{safe_tenant}</strong>.
    Set your password to get started:</p>
{_action_block(invite_url, "Accept Invitation")}
    <p style="{_MUTED_STYLE} margin-top: 32px;">
        This invitation will expire in {expires_days} days. If you didn't expect this
        invitation, you can safely ignore this email.
    </p>"""
    return subject, text, _wrap_html("You're invited!", body)


def build_password_reset_email(
    user_name: str, reset_url: str, expires_minutes: int
) -> tuple[str, str, str]:
    """Return (subject, text, html) for a password reset."""
    safe_user = html.escape(user_name)
    subject = "Reset your password"
    text = (
        f"Hi {user_name},\n\n"
        f"Use the link below to choose a new password:\n\n{reset_url}\n\n"
        f"This link expires in {expires_minutes} minutes. "
        "If you didn't request a reset, you can ignore this email."
    )
    body = f"""    <p>Hi {safe_user},</p>
    <p>We received a request to reset your password. Click below to choose a new one:</p>
{_action_block(reset_url, "Reset Password")}
    <p style="{_MUTED_STYLE} margin-top: 32px;">
        This link will expire in {expires_minutes} minutes. If you didn't request a
        reset, you can safely ignore this email.
    </p>"""
    return subject, text, _wrap_html("Reset your password", body)
