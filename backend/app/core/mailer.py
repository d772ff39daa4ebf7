"""Transactional mail for account security flows."""

from __future__ import annotations

import asyncio
import hashlib
import logging
from email.message import EmailMessage
from typing import Any, Coroutine

import aiosmtplib

from app.config import get_settings

logger = logging.getLogger(__name__)

settings = get_settings()

_pending: set[asyncio.Task[Any]] = set()


def mask_email(email: str) -> str:
    return hashlib.sha256(email.lower().encode("utf-8")).hexdigest()[:12]


async def _send_email(to_email: str, subject: str, body_html: str) -> None:
    if not settings.smtp_host:
        logger.warning("SMTP not configured, skipping email to %s", mask_email(to_email))
        return

    msg = EmailMessage()
    msg["From"] = settings.smtp_from_email
    msg["To"] = to_email
    msg["Subject"] = subject
    msg.set_content(body_html, subtype="html")

    # STARTTLS on 587, implicit TLS on 465.
    start_tls = bool(settings.smtp_tls) and int(settings.smtp_port) != 465
    use_tls = bool(settings.smtp_tls) and int(settings.smtp_port) == 465
    await aiosmtplib.send(
        msg,
        hostname=settings.smtp_host,
        port=settings.smtp_port,
        username=settings.smtp_user,
        password=settings.smtp_password,
        start_tls=start_tls,
        use_tls=use_tls,
    )
    logger.info("Email sent to %s", mask_email(to_email))


async def send_confirm_code_mail(code: str, email: str) -> None:
    body = f"""
    <html>
        <body>
            <p>Hello,</p>
            <p>Use the code below to confirm your email address:</p>
            <p><strong>{code}</strong></p>
        </body>
    </html>
    """
    await _send_email(email, "Confirm your email", body)


async def send_reset_password_mail(url: str, email: str) -> None:
    body = f"""
    <html>
        <body>
            <p>Hello,</p>
            <p>You requested a password reset. The link below is valid for one hour:</p>
            <p><a href="{url}">Reset Password</a></p>
            <p>If you did not request this, please ignore this email.</p>
        </body>
    </html>
    """
    await _send_email(email, "Reset your password", body)


def _log_failure(task: asyncio.Task[Any]) -> None:
    _pending.discard(task)
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error("Failed to deliver mail (%s)", task.get_name(), exc_info=exc)


def dispatch(coro: Coroutine[Any, Any, None], *, name: str = "mail") -> asyncio.Task[None]:
    """Send mail in the background; failures are logged and never retried."""

    task = asyncio.create_task(coro, name=name)
    _pending.add(task)
    task.add_done_callback(_log_failure)
    return task
