"""Signup, sign-in, password reset and Google login, plus the session dependencies."""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from app.api.errors import auth_http_error, mailer_http_error
from app.core.config import Settings, get_settings
from app.core.database import get_db
from app.core.security import session_ttl
from app.models.user import User
from app.schemas.auth import (
    ForgotPasswordRequest,
    GoogleLoginRequest,
    MessageResponse,
    PreSignupRequest,
    ResetPasswordRequest,
    SessionResponse,
    SigninRequest,
    SignupRequest,
    UserPublic,
)
from app.services import auth as auth_service
from app.services.auth import AuthError
from app.services.google_identity import GoogleIdentityVerifier, get_identity_verifier
from app.services.mailer import MailerError, SendGridMailer, get_mailer

logger = logging.getLogger(__name__)
router = APIRouter()
security = HTTPBearer(auto_error=False)


def _set_session_cookie(response: Response, token: str, settings: Settings) -> None:
    response.set_cookie(
        key=settings.SESSION_COOKIE_NAME,
        value=token,
        max_age=int(session_ttl(settings).total_seconds()),
        httponly=True,
        samesite="lax",
        secure=settings.APP_ENV == "prod",
    )


def _session_response(token: str, user: User) -> SessionResponse:
    return SessionResponse(token=token, user=UserPublic.model_validate(user))


@router.post("/pre-signup", response_model=MessageResponse)
async def pre_signup(
    body: PreSignupRequest,
    db: Annotated[Session, Depends(get_db)],
    settings: Annotated[Settings, Depends(get_settings)],
    mailer: Annotated[SendGridMailer, Depends(get_mailer)],
) -> MessageResponse:
    """Email an account activation link. The account is created by POST /signup."""
    try:
        message = await auth_service.pre_signup(
            db, body.name, body.email, body.password, settings, mailer
        )
    except AuthError as e:
        raise auth_http_error(e) from e
    except MailerError as e:
        logger.error("Activation email failed: %s", e.message)
        raise mailer_http_error(e) from e
    return MessageResponse(message=message)


@router.post("/signup", response_model=MessageResponse)
def signup(
    body: SignupRequest,
    db: Annotated[Session, Depends(get_db)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> MessageResponse:
    """Create the account from the activation token in the emailed link."""
    try:
        message = auth_service.complete_signup(db, body.token, settings)
    except AuthError as e:
        raise auth_http_error(e) from e
    return MessageResponse(message=message)


@router.post("/signin", response_model=SessionResponse, response_model_by_alias=True)
def signin(
    body: SigninRequest,
    response: Response,
    db: Annotated[Session, Depends(get_db)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> SessionResponse:
    """
    Authenticate with email and password; returns a session token and the user.
    The token is also set as a cookie. Send it back as: Bearer <token>
    """
    try:
        token, user = auth_service.sign_in(db, body.email, body.password, settings)
    except AuthError as e:
        raise auth_http_error(e) from e
    _set_session_cookie(response, token, settings)
    return _session_response(token, user)


@router.get("/signout", response_model=MessageResponse)
def signout(
    response: Response,
    settings: Annotated[Settings, Depends(get_settings)],
) -> MessageResponse:
    """Clear the session cookie. Issued tokens stay valid until they expire."""
    response.delete_cookie(settings.SESSION_COOKIE_NAME)
    return MessageResponse(message="Signout success")


@router.put("/forgot-password", response_model=MessageResponse)
async def forgot_password(
    body: ForgotPasswordRequest,
    db: Annotated[Session, Depends(get_db)],
    settings: Annotated[Settings, Depends(get_settings)],
    mailer: Annotated[SendGridMailer, Depends(get_mailer)],
) -> MessageResponse:
    try:
        message = await auth_service.forgot_password(db, body.email, settings, mailer)
    except AuthError as e:
        raise auth_http_error(e) from e
    except MailerError as e:
        logger.error("Reset email failed: %s", e.message)
        raise mailer_http_error(e) from e
    return MessageResponse(message=message)


@router.put("/reset-password", response_model=MessageResponse)
def reset_password(
    body: ResetPasswordRequest,
    db: Annotated[Session, Depends(get_db)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> MessageResponse:
    try:
        message = auth_service.reset_password(
            db, body.reset_password_link, body.new_password, settings
        )
    except AuthError as e:
        raise auth_http_error(e) from e
    return MessageResponse(message=message)


@router.post("/google-login", response_model=SessionResponse, response_model_by_alias=True)
async def google_login(
    body: GoogleLoginRequest,
    response: Response,
    db: Annotated[Session, Depends(get_db)],
    settings: Annotated[Settings, Depends(get_settings)],
    verifier: Annotated[GoogleIdentityVerifier, Depends(get_identity_verifier)],
) -> SessionResponse:
    """Sign in with a Google ID token; the account is created on first login."""
    try:
        token, user = await auth_service.google_login(db, body.id_token, settings, verifier)
    except AuthError as e:
        raise auth_http_error(e) from e
    _set_session_cookie(response, token, settings)
    return _session_response(token, user)


def require_signin(
    request: Request,
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> int:
    """Dependency: user id from a valid session token (Bearer header, else cookie). 401 otherwise."""
    token = credentials.credentials if credentials else request.cookies.get(settings.SESSION_COOKIE_NAME)
    try:
        return auth_service.user_id_from_session(token, settings)
    except AuthError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=e.message,
            headers={"WWW-Authenticate": "Bearer"},
        ) from e


def get_current_user(
    user_id: Annotated[int, Depends(require_signin)],
    db: Annotated[Session, Depends(get_db)],
) -> User:
    """Dependency: the signed-in user's record. 400 if it no longer exists."""
    try:
        return auth_service.load_user(db, user_id)
    except AuthError as e:
        raise auth_http_error(e) from e


def require_admin(
    current_user: Annotated[User, Depends(get_current_user)],
) -> User:
    """Dependency: signed-in user with the admin role."""
    try:
        return auth_service.require_admin_role(current_user)
    except AuthError as e:
        raise auth_http_error(e) from e
