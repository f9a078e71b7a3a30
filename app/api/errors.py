"""Translate service exceptions into HTTP errors rendered as {"error": message}."""

from fastapi import HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.services.auth import AuthError
from app.services.mailer import EmailNotConfiguredError, MailerError


def auth_http_error(e: AuthError) -> HTTPException:
    return HTTPException(status_code=e.status_code, detail=e.message)


def mailer_http_error(e: MailerError) -> HTTPException:
    """503 when email is not configured, 502 when the provider fails."""
    if isinstance(e, EmailNotConfiguredError):
        return HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=e.message)
    return HTTPException(
        status_code=status.HTTP_502_BAD_GATEWAY,
        detail="Email could not be sent. Try again later",
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.detail},
        headers=getattr(exc, "headers", None),
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Report only the first validation problem."""
    errors = exc.errors()
    message = "Invalid request"
    if errors:
        first = errors[0]
        field = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
        msg = str(first.get("msg", message))
        # pydantic prefixes messages raised from validators
        msg = msg.removeprefix("Value error, ")
        message = f"{field}: {msg}" if field else msg
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"error": message},
    )
