"""
Account lifecycle: signup activation, sign-in, password reset and Google login.

Each operation reads and writes users through the given SQLAlchemy session and
raises an AuthError subclass on failure; routes turn those into HTTP errors.
Nothing is retried: a failed step ends the request and the user starts the flow again.
"""

from __future__ import annotations

import logging
import secrets
import string
from typing import TYPE_CHECKING, Protocol

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.passwords import get_credential_store
from app.core.security import (
    InvalidTokenError,
    TokenPurpose,
    create_session_token,
    issue_token,
    verify_token,
)
from app.models.user import NAME_MAX_LEN, ROLE_USER, User
from app.services.google_identity import GoogleIdentity, IdentityTokenError
from app.services.mailer import EmailMessage, activation_email, reset_password_email

if TYPE_CHECKING:
    from app.core.config import Settings

logger = logging.getLogger(__name__)

USERNAME_ALPHABET = string.ascii_lowercase + string.digits
USERNAME_LENGTH = 9


class Mailer(Protocol):
    async def send(self, message: EmailMessage) -> None: ...


class IdentityVerifier(Protocol):
    async def verify(self, id_token: str, audience: str) -> GoogleIdentity: ...


class AuthError(Exception):
    """Base class for account flow failures; message is safe to show to the user."""

    status_code = 400
    default_message = "Something went wrong. Try again"

    def __init__(self, message: str | None = None, status_code: int | None = None) -> None:
        self.message = message or self.default_message
        if status_code is not None:
            self.status_code = status_code
        super().__init__(self.message)


class EmailTaken(AuthError):
    default_message = "Email is taken"


class DuplicateKey(AuthError):
    default_message = "Account already exists"


class ExpiredOrInvalid(AuthError):
    """Token failed signature, expiry or format checks. The cause is not disclosed."""

    status_code = 401
    default_message = "Expired link. Try again"


class UserNotFound(AuthError):
    default_message = "User with that email does not exist. Please signup"


class NotFound(AuthError):
    status_code = 401
    default_message = "Something went wrong. Try again"


class BadCredentials(AuthError):
    default_message = "Email and password do not match"


class UnverifiedEmail(AuthError):
    default_message = "Google login failed. Try again"


class InvalidIdentityToken(AuthError):
    default_message = "Google login failed. Try again"


class StorageError(AuthError):
    default_message = "Something went wrong. Try again"


class AccessDenied(AuthError):
    default_message = "Admin resource. Access denied"


def generate_username() -> str:
    """Random short public id; lowercase so it survives the model's normalization."""
    return "".join(secrets.choice(USERNAME_ALPHABET) for _ in range(USERNAME_LENGTH))


def profile_url(username: str, settings: Settings) -> str:
    return f"{settings.CLIENT_URL}/profile/{username}"


def _duplicate_field(exc: IntegrityError) -> str | None:
    text = str(exc.orig).lower()
    for field in ("email", "username"):
        if field in text:
            return field
    return None


def _commit(db: Session) -> None:
    """Commit, mapping uniqueness violations to DuplicateKey and other failures to StorageError."""
    try:
        db.commit()
    except IntegrityError as e:
        db.rollback()
        field = _duplicate_field(e)
        message = f"{field.capitalize()} already exists" if field else None
        raise DuplicateKey(message) from e
    except SQLAlchemyError as e:
        db.rollback()
        logger.error("User write failed: %s", type(e).__name__)
        raise StorageError() from e


def _find_user(db: Session, *criteria) -> User | None:
    """First user matching the criteria; read failures become StorageError."""
    try:
        return db.query(User).filter(*criteria).first()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error("User lookup failed: %s", type(e).__name__)
        raise StorageError() from e


def _create_user(
    db: Session,
    name: str,
    email: str,
    plain_password: str | None,
    settings: Settings,
    federated: bool = False,
) -> User:
    store = get_credential_store(settings)
    if federated:
        credential = store.set_federated_password(plain_password or "")
    else:
        credential = store.set_password(plain_password)
    username = generate_username()
    user = User(
        name=name[:NAME_MAX_LEN],
        email=email,
        username=username,
        profile=profile_url(username, settings),
        salt=credential.salt,
        password_hash=credential.password_hash,
        role=ROLE_USER,
        reset_password_link="",
    )
    db.add(user)
    _commit(db)
    db.refresh(user)
    return user


async def pre_signup(
    db: Session,
    name: str,
    email: str,
    password: str,
    settings: Settings,
    mailer: Mailer,
) -> str:
    """
    Email an activation link carrying the signup details. Nothing is persisted yet.

    Raises EmailTaken if an account already uses the email (case-insensitive).
    """
    existing = _find_user(db, User.email == email.lower())
    if existing is not None:
        raise EmailTaken()
    token = issue_token(
        TokenPurpose.ACCOUNT_ACTIVATION,
        {"name": name, "email": email, "password": password},
        settings,
    )
    await mailer.send(activation_email(email, token, settings))
    logger.info("Activation email sent", extra={"event": "pre_signup"})
    return f"Email has been sent to {email}. Follow the instructions to activate your account"


def complete_signup(db: Session, token: str | None, settings: Settings) -> str:
    """
    Create the account described by a valid activation token.

    A missing token returns a retry message rather than raising. The user must
    sign in afterwards; no session is issued here.
    """
    if not token:
        return "Something went wrong. Try again"
    try:
        claims = verify_token(TokenPurpose.ACCOUNT_ACTIVATION, token, settings)
    except InvalidTokenError as e:
        raise ExpiredOrInvalid("Expired link. Signup again") from e
    name = claims.get("name")
    email = claims.get("email")
    password = claims.get("password")
    if not name or not email or password is None:
        raise ExpiredOrInvalid("Expired link. Signup again")

    user = _create_user(db, name, email, password, settings)
    logger.info("Account activated", extra={"event": "signup", "user_id": user.id})
    return "Signup success! Please signin"


def sign_in(db: Session, email: str, password: str, settings: Settings) -> tuple[str, User]:
    """
    Check the password and issue a session token.

    The email is matched exactly as given (stored emails are lowercase).
    """
    user = _find_user(db, User.email == email)
    if user is None:
        raise UserNotFound()
    store = get_credential_store(settings)
    if not store.verify_password(password, user.salt, user.password_hash):
        logger.info("Sign-in rejected", extra={"event": "signin", "user_id": user.id})
        raise BadCredentials()
    token = create_session_token(user.id, settings)
    logger.info("Signed in", extra={"event": "signin", "user_id": user.id})
    return token, user


async def forgot_password(
    db: Session,
    email: str,
    settings: Settings,
    mailer: Mailer,
) -> str:
    """
    Record a reset token on the user, then email it.

    The token is committed before the email goes out; a failed write sends nothing.
    """
    user = _find_user(db, User.email == email)
    if user is None:
        raise UserNotFound("User not found", status_code=401)
    token = issue_token(TokenPurpose.PASSWORD_RESET, {"sub": str(user.id)}, settings)
    user.reset_password_link = token
    _commit(db)

    await mailer.send(reset_password_email(email, token, settings))
    logger.info("Reset email sent", extra={"event": "forgot_password", "user_id": user.id})
    return (
        f"Email has been sent to {email}. Follow the instructions to reset your password. "
        f"Link expires in {settings.RESET_PASSWORD_EXPIRE_MINUTES}min"
    )


def reset_password(
    db: Session,
    reset_token: str,
    new_password: str,
    settings: Settings,
) -> str:
    """
    Set a new password if the token is valid and still recorded on the user.

    Clearing the recorded token makes it single-use even while its signature is valid.
    """
    try:
        claims = verify_token(TokenPurpose.PASSWORD_RESET, reset_token, settings)
    except InvalidTokenError as e:
        raise ExpiredOrInvalid() from e
    user = _find_user(db, User.reset_password_link == reset_token)
    if user is None or str(user.id) != str(claims.get("sub")):
        raise NotFound()

    credential = get_credential_store(settings).set_password(new_password)
    user.salt = credential.salt
    user.password_hash = credential.password_hash
    user.reset_password_link = ""
    _commit(db)
    logger.info("Password reset", extra={"event": "reset_password", "user_id": user.id})
    return "Great! Now you can login with your new password"


async def google_login(
    db: Session,
    id_token: str,
    settings: Settings,
    verifier: IdentityVerifier,
) -> tuple[str, User]:
    """
    Sign in with a Google ID token, creating the account on first use.

    An existing account with the same email is signed in directly.
    """
    if not settings.GOOGLE_CLIENT_ID:
        raise InvalidIdentityToken()
    try:
        identity = await verifier.verify(id_token, settings.GOOGLE_CLIENT_ID)
    except IdentityTokenError as e:
        logger.info("Google token rejected: %s", e.message)
        raise InvalidIdentityToken() from e
    if not identity.email_verified:
        raise UnverifiedEmail()

    email = identity.email.lower()
    user = _find_user(db, User.email == email)
    if user is None:
        user = _create_user(
            db,
            identity.name,
            email,
            identity.token_id or identity.subject_id,
            settings,
            federated=True,
        )
        logger.info("Account provisioned from Google", extra={"event": "google_login", "user_id": user.id})
    token = create_session_token(user.id, settings)
    logger.info("Signed in with Google", extra={"event": "google_login", "user_id": user.id})
    return token, user


def user_id_from_session(token: str | None, settings: Settings) -> int:
    """Return the user id in a session token. Raises ExpiredOrInvalid."""
    if not token:
        raise ExpiredOrInvalid("Invalid or expired token")
    try:
        claims = verify_token(TokenPurpose.SESSION, token, settings)
        return int(claims["sub"])
    except (InvalidTokenError, KeyError, TypeError, ValueError) as e:
        raise ExpiredOrInvalid("Invalid or expired token") from e


def load_user(db: Session, user_id: int) -> User:
    user = _find_user(db, User.id == user_id)
    if user is None:
        raise UserNotFound("User not found")
    return user


def require_admin_role(user: User) -> User:
    if not user.is_admin:
        raise AccessDenied()
    return user
