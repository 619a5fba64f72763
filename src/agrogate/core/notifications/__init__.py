"""Notification utilities - email."""

from src.agrogate.core.notifications.email import (
    MailSender,
    build_invite_email,
    build_password_reset_email,
)

__all__ = [
    "MailSender",
    "build_invite_email",
    "build_password_reset_email",
]
