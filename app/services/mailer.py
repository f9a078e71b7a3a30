"""Outbound email through the SendGrid v3 HTTP API, plus the transactional templates."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from html import escape
from typing import TYPE_CHECKING, Any

import httpx

from app.core.config import get_settings

if TYPE_CHECKING:
    from app.core.config import Settings

logger = logging.getLogger(__name__)

SIGNATURE_HTML = """
<hr />
<p>This email may contain sensitive information</p>
<p>https://seoblog.com</p>
"""


class MailerError(Exception):
    """Base class for email transport failures."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.message = message
        self.status_code = status_code
        super().__init__(message)


class EmailNotConfiguredError(MailerError):
    """Raised when sending is attempted without SENDGRID_API_KEY."""


class EmailDeliveryError(MailerError):
    """Raised when SendGrid is unreachable or rejects the message."""


@dataclass
class EmailMessage:
    sender: str
    to: list[str]
    subject: str
    html: str
    text: str | None = None
    reply_to: str | None = None
    headers: dict[str, str] = field(default_factory=dict)


def _to_sendgrid_payload(message: EmailMessage) -> dict[str, Any]:
    content = []
    if message.text:
        content.append({"type": "text/plain", "value": message.text})
    content.append({"type": "text/html", "value": message.html})
    payload: dict[str, Any] = {
        "personalizations": [{"to": [{"email": addr} for addr in message.to]}],
        "from": {"email": message.sender},
        "subject": message.subject,
        "content": content,
    }
    if message.reply_to:
        payload["reply_to"] = {"email": message.reply_to}
    if message.headers:
        payload["headers"] = message.headers
    return payload


class SendGridMailer:
    """Sends one message per call; no retries, a failure is returned to the caller."""

    def __init__(self, settings: Settings) -> None:
        self.settings = settings

    def _api_key(self) -> str:
        key = self.settings.SENDGRID_API_KEY
        if key is None or not key.get_secret_value().strip():
            raise EmailNotConfiguredError(
                "Email is not configured; set SENDGRID_API_KEY."
            )
        return key.get_secret_value()

    async def send(self, message: EmailMessage) -> None:
        api_key = self._api_key()
        if not message.to:
            raise EmailDeliveryError("Email has no recipients.")
        timeout = max(1.0, min(120.0, self.settings.EMAIL_REQUEST_TIMEOUT_SEC))
        headers = {"Authorization": f"Bearer {api_key}"}
        try:
            async with httpx.AsyncClient(timeout=timeout) as client:
                resp = await client.post(
                    self.settings.SENDGRID_API_URL,
                    json=_to_sendgrid_payload(message),
                    headers=headers,
                )
        except httpx.TimeoutException as e:
            raise EmailDeliveryError("Email provider timed out.") from e
        except httpx.RequestError as e:
            raise EmailDeliveryError(f"Email provider unreachable: {e!s}") from e

        if resp.status_code == 401:
            raise EmailDeliveryError("Email provider rejected the API key.", 401)
        if resp.status_code >= 400:
            try:
                body = resp.json()
                errors = body.get("errors", [])
                detail = "; ".join(str(err.get("message", err)) for err in errors) or json.dumps(body)[:500]
            except Exception:
                detail = resp.text[:500] if resp.text else "Unknown error"
            raise EmailDeliveryError(
                f"Email provider returned {resp.status_code}: {detail}", resp.status_code
            )
        logger.info(
            "Email sent",
            extra={"subject": message.subject, "recipient_count": len(message.to)},
        )


def activation_email(email: str, token: str, settings: Settings) -> EmailMessage:
    link = f"{settings.CLIENT_URL}/auth/account/activate/{token}"
    return EmailMessage(
        sender=settings.EMAIL_FROM,
        to=[email],
        subject="Account activation link",
        html=(
            "<p>Please use the following link to activate your account:</p>"
            f"<p>{escape(link)}</p>" + SIGNATURE_HTML
        ),
    )


def reset_password_email(email: str, token: str, settings: Settings) -> EmailMessage:
    link = f"{settings.CLIENT_URL}/auth/password/reset/{token}"
    return EmailMessage(
        sender=settings.EMAIL_FROM,
        to=[email],
        subject="Password reset link",
        html=(
            "<p>Please use the following link to reset your password:</p>"
            f"<p>{escape(link)}</p>" + SIGNATURE_HTML
        ),
    )


def get_mailer() -> SendGridMailer:
    """Dependency: mailer bound to the current settings."""
    return SendGridMailer(get_settings())
