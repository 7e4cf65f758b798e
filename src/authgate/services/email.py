"""Delivery of verification and password reset codes by email."""

import logging
from abc import ABC, abstractmethod
from collections.abc import Callable
from datetime import timedelta
from email.message import EmailMessage

import aiosmtplib
import httpx

from authgate.config import settings
from authgate.errors import AuthgateError
from authgate.models import VerificationType

logger = logging.getLogger(__name__)

RESEND_API_URL = "https://api.resend.com/emails"
RESEND_TIMEOUT_SECONDS = 30.0


class EmailDeliveryError(AuthgateError):
    """The configured backend could not deliver a message."""

    message = "Unable to send email. Please try again later"


class EmailBackend(ABC):
    """Transport for a single multipart message."""

    @abstractmethod
    async def send(self, to: str, subject: str, html: str, text: str) -> None:
        """Deliver the message or raise EmailDeliveryError."""


class ConsoleEmailBackend(EmailBackend):
    """Writes messages to the log instead of sending them (development only)."""

    async def send(self, to: str, subject: str, html: str, text: str) -> None:
        rule = "-" * 60
        logger.info(f"Email to {to} not sent (console backend)\n{rule}\n{subject}\n\n{text}\n{rule}")


class SMTPEmailBackend(EmailBackend):
    def __init__(
        self,
        host: str,
        port: int,
        username: str,
        password: str,
        use_tls: bool = True,
        from_address: str = "",
    ):
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.use_tls = use_tls
        self.from_address = from_address

    def build_message(self, to: str, subject: str, html: str, text: str) -> EmailMessage:
        message = EmailMessage()
        message["From"] = self.from_address
        message["To"] = to
        message["Subject"] = subject
        message.set_content(text)
        message.add_alternative(html, subtype="html")
        return message

    async def send(self, to: str, subject: str, html: str, text: str) -> None:
        try:
            await aiosmtplib.send(
                self.build_message(to, subject, html, text),
                hostname=self.host,
                port=self.port,
                username=self.username or None,
                password=self.password or None,
                start_tls=self.use_tls,
            )
        except aiosmtplib.SMTPException as e:
            raise EmailDeliveryError(f"SMTP delivery to {to} via {self.host} failed: {e}") from e
        logger.info(f"Sent email to {to} via SMTP")


class ResendEmailBackend(EmailBackend):
    """Sends through the Resend HTTP API."""

    def __init__(self, api_key: str, from_address: str):
        self.api_key = api_key
        self.from_address = from_address

    async def send(self, to: str, subject: str, html: str, text: str) -> None:
        payload = {
            "from": self.from_address,
            "to": [to],
            "subject": subject,
            "html": html,
            "text": text,
        }
        try:
            async with httpx.AsyncClient(timeout=RESEND_TIMEOUT_SECONDS) as client:
                response = await client.post(
                    RESEND_API_URL,
                    headers={"Authorization": f"Bearer {self.api_key}"},
                    json=payload,
                )
                response.raise_for_status()
        except httpx.HTTPStatusError as e:
            status, body = e.response.status_code, e.response.text
            raise EmailDeliveryError(f"Resend rejected email to {to}: {status} {body}") from e
        except httpx.HTTPError as e:
            raise EmailDeliveryError(f"Resend unreachable sending to {to}: {e!r}") from e
        logger.info(f"Sent email to {to} via Resend")


def _smtp_backend() -> EmailBackend:
    return SMTPEmailBackend(
        host=settings.smtp_host,
        port=settings.smtp_port,
        username=settings.smtp_username,
        password=settings.smtp_password,
        use_tls=settings.smtp_use_tls,
        from_address=settings.email_from,
    )


def _resend_backend() -> EmailBackend:
    return ResendEmailBackend(api_key=settings.resend_api_key, from_address=settings.email_from)


BACKENDS: dict[str, Callable[[], EmailBackend]] = {
    "console": ConsoleEmailBackend,
    "smtp": _smtp_backend,
    "resend": _resend_backend,
}


def get_email_backend() -> EmailBackend:
    """Build the backend named by EMAIL_BACKEND."""
    factory = BACKENDS.get(settings.email_backend)
    if factory is None:
        raise ValueError(f"Unknown email backend: {settings.email_backend}")
    return factory()


CODE_EMAIL_HTML = """\
<html>
  <body style="font-family: Helvetica, Arial, sans-serif; color: #222; max-width: 560px; margin: 0 auto;">
    <h2>{heading}</h2>
    <p>Hi {name},</p>
    <p>{intro}</p>
    <p style="font-size: 26px; font-family: monospace; letter-spacing: 6px; text-align: center;">{code}</p>
    <p>The code is valid for {expires_in} and works only once.</p>
    <p style="color: #777; font-size: 13px;">Not you? Ignore this message and nothing will change.</p>
  </body>
</html>
"""

CODE_EMAIL_TEXT = """
{heading}

Hi {name},

{intro}

    {code}

The code is valid for {expires_in} and works only once.

Not you? Ignore this message and nothing will change.
"""

CODE_EMAIL_COPY: dict[VerificationType, tuple[str, str]] = {
    VerificationType.EMAIL_VERIFY: (
        "Confirm your email address",
        "Enter this code to finish setting up your account.",
    ),
    VerificationType.PASS_RESET: (
        "Reset your password",
        "Enter this code to choose a new password.",
    ),
}


def format_duration(duration: timedelta) -> str:
    """Render a lifetime as '15 minutes', '2 hours' or '1 day'."""
    minutes = int(duration.total_seconds() // 60)
    for unit, size in (("day", 24 * 60), ("hour", 60)):
        if minutes >= size and minutes % size == 0:
            count = minutes // size
            return f"{count} {unit}{'s' if count != 1 else ''}"
    return f"{minutes} minute{'s' if minutes != 1 else ''}"


class EmailService:
    """Renders code emails and hands them to the configured backend."""

    def __init__(self, backend: EmailBackend | None = None):
        self._backend = backend

    @property
    def backend(self) -> EmailBackend:
        # Built on first use so importing this module never reads mail settings
        if self._backend is None:
            self._backend = get_email_backend()
        return self._backend

    async def send_verification_code(
        self,
        to: str,
        code: str,
        verification_type: VerificationType,
        expires_in: timedelta,
        username: str | None = None,
    ) -> None:
        heading, intro = CODE_EMAIL_COPY[verification_type]
        fields = {
            "heading": heading,
            "intro": intro,
            "name": username or to,
            "code": code,
            "expires_in": format_duration(expires_in),
        }
        await self.backend.send(
            to=to,
            subject=f"{settings.app_name}: {heading}",
            html=CODE_EMAIL_HTML.format(**fields),
            text=CODE_EMAIL_TEXT.format(**fields),
        )


email_service = EmailService()
