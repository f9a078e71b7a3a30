"""Contact form endpoints: message the site owner or a blog author."""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends

from app.api.errors import mailer_http_error
from app.core.config import Settings, get_settings
from app.schemas.contact import ContactAuthorRequest, ContactRequest, ContactResponse
from app.services.contact import send_author_message, send_contact_message
from app.services.mailer import MailerError, SendGridMailer, get_mailer

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/contact", response_model=ContactResponse)
async def contact(
    body: ContactRequest,
    settings: Annotated[Settings, Depends(get_settings)],
    mailer: Annotated[SendGridMailer, Depends(get_mailer)],
) -> ContactResponse:
    try:
        await send_contact_message(body.name, body.email, body.message, settings, mailer)
    except MailerError as e:
        logger.error("Contact email failed: %s", e.message)
        raise mailer_http_error(e) from e
    return ContactResponse(success=True)


@router.post("/contact-blog-author", response_model=ContactResponse)
async def contact_blog_author(
    body: ContactAuthorRequest,
    settings: Annotated[Settings, Depends(get_settings)],
    mailer: Annotated[SendGridMailer, Depends(get_mailer)],
) -> ContactResponse:
    try:
        await send_author_message(
            body.author_email, body.name, body.email, body.message, settings, mailer
        )
    except MailerError as e:
        logger.error("Author contact email failed: %s", e.message)
        raise mailer_http_error(e) from e
    return ContactResponse(success=True)
