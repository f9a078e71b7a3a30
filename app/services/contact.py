"""Contact forms: relay a visitor's message to the site owner or to a blog author."""

from __future__ import annotations

from html import escape
from typing import TYPE_CHECKING

from app.services.mailer import SIGNATURE_HTML, EmailMessage

if TYPE_CHECKING:
    from app.core.config import Settings
    from app.services.auth import Mailer


def _body(heading: str, name: str, email: str, message: str) -> tuple[str, str]:
    text = (
        f"{heading}\n"
        f"Sender name: {name}\n"
        f"Sender email: {email}\n"
        f"Sender message: {message}"
    )
    html = (
        f"<h4>{escape(heading)}</h4>"
        f"<p>Sender name: {escape(name)}</p>"
        f"<p>Sender email: {escape(email)}</p>"
        f"<p>Sender message: {escape(message)}</p>" + SIGNATURE_HTML
    )
    return text, html


def contact_message(name: str, email: str, message: str, settings: Settings) -> EmailMessage:
    text, html = _body("Email received from contact form:", name, email, message)
    return EmailMessage(
        sender=settings.EMAIL_FROM,
        to=[settings.EMAIL_TO],
        subject=f"Contact form - {settings.APP_NAME}",
        html=html,
        text=text,
        reply_to=email,
    )


def author_message(
    author_email: str,
    name: str,
    email: str,
    message: str,
    settings: Settings,
) -> EmailMessage:
    text, html = _body("Message received from:", name, email, message)
    recipients = [author_email]
    if settings.EMAIL_TO.lower() != author_email.lower():
        recipients.append(settings.EMAIL_TO)
    return EmailMessage(
        sender=settings.EMAIL_FROM,
        to=recipients,
        subject=f"Someone messaged you from {settings.APP_NAME}",
        html=html,
        text=text,
        reply_to=email,
    )


async def send_contact_message(
    name: str, email: str, message: str, settings: Settings, mailer: Mailer
) -> None:
    await mailer.send(contact_message(name, email, message, settings))


async def send_author_message(
    author_email: str,
    name: str,
    email: str,
    message: str,
    settings: Settings,
    mailer: Mailer,
) -> None:
    await mailer.send(author_message(author_email, name, email, message, settings))
