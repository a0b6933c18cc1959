"""Outgoing email: verification message rendering and delivery backends.

Backends report failure by returning False; the worker treats that the same
as an exception and leaves the job for redelivery.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from urllib.parse import urlencode

import aiosmtplib
import httpx

from stormlink.config import settings

logger = logging.getLogger(__name__)

RESEND_API_URL = "https://api.resend.com/emails"


@dataclass(frozen=True)
class OutgoingEmail:
    """A rendered message ready for a backend."""

    to: str
    subject: str
    html: str
    text: str


class EmailBackend(ABC):
    """Delivers rendered messages over some transport."""

    @abstractmethod
    async def send(self, email: OutgoingEmail) -> bool:
        """Deliver one message. Returns True once the transport accepted it."""


class ConsoleEmailBackend(EmailBackend):
    """Logs messages instead of sending them (development and tests)."""

    async def send(self, email: OutgoingEmail) -> bool:
        rule = "-" * 60
        logger.info(f"\n{rule}\nTo: {email.to}\nSubject: {email.subject}\n{rule}\n{email.text}\n{rule}")
        return True


class SMTPEmailBackend(EmailBackend):
    """Delivers through an SMTP relay with STARTTLS."""

    def __init__(
        self,
        host: str,
        port: int,
        username: str,
        password: str,
        use_tls: bool = True,
        from_address: str = "",
        timeout: float = 30.0,
    ):
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.use_tls = use_tls
        self.from_address = from_address
        self.timeout = timeout

    def build_message(self, email: OutgoingEmail) -> MIMEMultipart:
        message = MIMEMultipart("alternative")
        message["From"] = self.from_address
        message["To"] = email.to
        message["Subject"] = email.subject
        # Clients render the last alternative they support, so html goes last
        message.attach(MIMEText(email.text, "plain", "utf-8"))
        message.attach(MIMEText(email.html, "html", "utf-8"))
        return message

    async def send(self, email: OutgoingEmail) -> bool:
        try:
            # The timeout applies to every SMTP step; a hung relay must not stall the worker
            await aiosmtplib.send(
                self.build_message(email),
                hostname=self.host,
                port=self.port,
                username=self.username or None,
                password=self.password or None,
                start_tls=self.use_tls,
                timeout=self.timeout,
            )
        except (aiosmtplib.SMTPException, OSError) as e:
            logger.error(f"SMTP delivery to {email.to} via {self.host}:{self.port} failed: {e!r}")
            return False

        logger.info(f"Email sent via SMTP to {email.to}")
        return True


class ResendEmailBackend(EmailBackend):
    """Delivers through the Resend HTTP API."""

    def __init__(self, api_key: str, from_address: str, timeout: float = 30.0):
        self.api_key = api_key
        self.from_address = from_address
        self.timeout = timeout

    async def send(self, email: OutgoingEmail) -> bool:
        payload = {
            "from": self.from_address,
            "to": [email.to],
            "subject": email.subject,
            "html": email.html,
            "text": email.text,
        }
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            try:
                response = await client.post(
                    RESEND_API_URL,
                    headers={"Authorization": f"Bearer {self.api_key}"},
                    json=payload,
                )
                response.raise_for_status()
            except httpx.HTTPStatusError as e:
                logger.error(
                    f"Resend rejected email to {email.to}: "
                    f"{e.response.status_code} - {e.response.text}"
                )
                return False
            except httpx.HTTPError as e:
                logger.error(f"Resend request for {email.to} failed: {e!r}")
                return False

        logger.info(f"Email sent via Resend to {email.to}")
        return True


def get_email_backend() -> EmailBackend:
    """Get the backend selected by EMAIL_BACKEND."""
    if settings.email_backend == "console":
        return ConsoleEmailBackend()
    if settings.email_backend == "smtp":
        return SMTPEmailBackend(
            host=settings.smtp_host,
            port=settings.smtp_port,
            username=settings.smtp_username,
            password=settings.smtp_password,
            use_tls=settings.smtp_use_tls,
            from_address=settings.email_from,
            timeout=settings.smtp_timeout,
        )
    if settings.email_backend == "resend":
        return ResendEmailBackend(api_key=settings.resend_api_key, from_address=settings.email_from)
    raise ValueError(f"Unknown email backend: {settings.email_backend}")


def build_verification_link(token: str) -> str:
    """Build the link a user follows to verify their address."""
    return f"{settings.app_url.rstrip('/')}/verify-email?{urlencode({'token': token})}"


def render_verification_email(to: str, token: str) -> OutgoingEmail:
    link = build_verification_link(token)
    hours = settings.verification_token_ttl_hours

    html = f"""\
<!DOCTYPE html>
<html>
<head><meta charset="utf-8"></head>
<body style="font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif; line-height: 1.6; color: #333; max-width: 600px; margin: 0 auto; padding: 20px;">
    <h2>Confirm your email address</h2>
    <p>Confirm your email address by following the link below:</p>
    <p><a href="{link}">Confirm email</a></p>
    <p style="color: #666; font-size: 14px;">This link will be valid for the next {hours} hours.</p>
    <p style="color: #666; font-size: 12px;">
        If the button doesn't work, paste this address into your browser:<br>
        <a href="{link}" style="word-break: break-all;">{link}</a>
    </p>
</body>
</html>
"""
    text = (
        "Confirm your email address\n"
        "\n"
        "Confirm your email address by following the link below.\n"
        f"This link will be valid for the next {hours} hours.\n"
        "\n"
        f"{link}\n"
    )
    return OutgoingEmail(to=to, subject="Confirm your email address", html=html, text=text)


class EmailService:
    """Application-level email operations."""

    def __init__(self, backend: EmailBackend | None = None):
        self._backend = backend

    @property
    def backend(self) -> EmailBackend:
        """Lazy-load the backend."""
        if self._backend is None:
            self._backend = get_email_backend()
        return self._backend

    async def send_verification_email(self, to: str, token: str) -> bool:
        """Send the verification link for ``token`` to ``to``."""
        return await self.backend.send(render_verification_email(to, token))


# Global email service instance
email_service = EmailService()
