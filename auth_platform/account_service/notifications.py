"""
Password reset email delivery.

Use-cases talk to a PasswordResetNotifier. Over HTTP the notifier is a
BackgroundNotifier, which hands the message to a mailer after the response
has been sent, so delivery problems never reach the requester.
"""
import logging
from email.message import EmailMessage
from typing import Optional, Protocol
from urllib.parse import urlencode

import aiosmtplib
from fastapi import BackgroundTasks

from .config import Settings

logger = logging.getLogger(__name__)

SUBJECT = "Password reset"


class PasswordResetNotifier(Protocol):
    def send_password_reset_email(self, to_email: str, to_name: Optional[str], token: str) -> None:
        ...


class Mailer(Protocol):
    async def send_password_reset(self, to_email: str, to_name: Optional[str], reset_link: str) -> None:
        ...


def build_reset_link(base_url: str, token: str) -> str:
    separator = "&" if "?" in base_url else "?"
    return f"{base_url}{separator}{urlencode({'token': token})}"


def render_reset_email(to_name: Optional[str], reset_link: str) -> str:
    greeting = f"Hello {to_name}," if to_name else "Hello,"
    return (
        f"{greeting}\n\n"
        "We received a request to reset the password of your account.\n"
        f"Open the link below to choose a new password:\n\n{reset_link}\n\n"
        "The link is valid for 1 hour and can only be used once.\n"
        "If you did not ask for a new password you can ignore this email.\n"
    )


class LogMailer:
    """Development mailer: writes the reset link to the log instead of sending it."""

    async def send_password_reset(self, to_email: str, to_name: Optional[str], reset_link: str) -> None:
        logger.info("[DEV] Password reset link for %s: %s", to_email, reset_link)


class SmtpMailer:
    def __init__(
        self,
        host: str,
        port: int,
        from_email: str,
        from_name: str,
        username: Optional[str] = None,
        password: Optional[str] = None,
        use_tls: bool = True,
        timeout: int = 10,
    ):
        self.host = host
        self.port = port
        self.from_email = from_email
        self.from_name = from_name
        self.username = username
        self.password = password
        self.use_tls = use_tls
        self.timeout = timeout

    async def send_password_reset(self, to_email: str, to_name: Optional[str], reset_link: str) -> None:
        message = EmailMessage()
        message["Subject"] = SUBJECT
        message["From"] = f"{self.from_name} <{self.from_email}>"
        message["To"] = to_email
        message.set_content(render_reset_email(to_name, reset_link))

        await aiosmtplib.send(
            message,
            hostname=self.host,
            port=self.port,
            username=self.username,
            password=self.password,
            start_tls=self.use_tls,
            timeout=self.timeout,
        )
        logger.info("Password reset email sent to %s", to_email)


def build_mailer(settings: Settings) -> Mailer:
    if not settings.SMTP_HOST:
        return LogMailer()
    return SmtpMailer(
        host=settings.SMTP_HOST,
        port=settings.SMTP_PORT,
        from_email=settings.MAIL_FROM,
        from_name=settings.MAIL_FROM_NAME,
        username=settings.SMTP_USERNAME,
        password=settings.SMTP_PASSWORD,
        use_tls=settings.SMTP_USE_TLS,
    )


class BackgroundNotifier:
    def __init__(self, background_tasks: BackgroundTasks, mailer: Mailer, reset_url: str):
        self.background_tasks = background_tasks
        self.mailer = mailer
        self.reset_url = reset_url

    def send_password_reset_email(self, to_email: str, to_name: Optional[str], token: str) -> None:
        self.background_tasks.add_task(self.deliver, to_email, to_name, build_reset_link(self.reset_url, token))

    async def deliver(self, to_email: str, to_name: Optional[str], reset_link: str) -> None:
        try:
            await self.mailer.send_password_reset(to_email, to_name, reset_link)
        except (aiosmtplib.SMTPException, OSError):
            logger.exception("Failed to deliver password reset email to %s", to_email)
