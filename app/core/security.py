"""Signed, time-limited JWTs for account activation, sessions and password reset."""

from datetime import UTC, datetime, timedelta
from enum import Enum
from typing import TYPE_CHECKING, Any

import jwt

if TYPE_CHECKING:
    from app.core.config import Settings

# Claims added by encode_token; stripped again by decode_token.
RESERVED_CLAIMS = ("exp", "iat", "purpose")


class TokenPurpose(str, Enum):
    ACCOUNT_ACTIVATION = "account_activation"
    SESSION = "session"
    PASSWORD_RESET = "password_reset"


class InvalidTokenError(Exception):
    """Raised when a token is expired, tampered with, malformed or issued for another purpose."""

    def __init__(self, message: str = "Invalid or expired token") -> None:
        self.message = message
        super().__init__(message)


def encode_token(
    claims: dict[str, Any],
    secret: str,
    ttl: timedelta,
    algorithm: str = "HS256",
    purpose: str | None = None,
    now: datetime | None = None,
) -> str:
    """Sign claims with secret; the token expires ttl after now."""
    issued_at = now or datetime.now(UTC)
    payload: dict[str, Any] = dict(claims)
    payload["iat"] = issued_at
    payload["exp"] = issued_at + ttl
    if purpose is not None:
        payload["purpose"] = purpose
    return jwt.encode(payload, secret, algorithm=algorithm)


def decode_token(
    token: str,
    secret: str,
    algorithm: str = "HS256",
    purpose: str | None = None,
) -> dict[str, Any]:
    """
    Verify signature and expiry and return the caller's claims.

    Every failure raises InvalidTokenError; expiry and tampering are not distinguished.
    """
    if not token:
        raise InvalidTokenError()
    try:
        payload = jwt.decode(token, secret, algorithms=[algorithm])
    except jwt.PyJWTError as e:
        raise InvalidTokenError() from e
    if purpose is not None and payload.get("purpose") != purpose:
        raise InvalidTokenError()
    return {k: v for k, v in payload.items() if k not in RESERVED_CLAIMS}


def _secret_for(purpose: TokenPurpose, settings: "Settings") -> str:
    if purpose is TokenPurpose.ACCOUNT_ACTIVATION:
        return settings.JWT_ACCOUNT_ACTIVATION.get_secret_value()
    if purpose is TokenPurpose.PASSWORD_RESET:
        return settings.JWT_RESET_PASSWORD.get_secret_value()
    return settings.JWT_SECRET.get_secret_value()


def _ttl_for(purpose: TokenPurpose, settings: "Settings") -> timedelta:
    if purpose is TokenPurpose.ACCOUNT_ACTIVATION:
        return timedelta(minutes=settings.ACTIVATION_EXPIRE_MINUTES)
    if purpose is TokenPurpose.PASSWORD_RESET:
        return timedelta(minutes=settings.RESET_PASSWORD_EXPIRE_MINUTES)
    return timedelta(minutes=settings.SESSION_EXPIRE_MINUTES)


def issue_token(
    purpose: TokenPurpose,
    claims: dict[str, Any],
    settings: "Settings",
    now: datetime | None = None,
) -> str:
    """Issue a token with the secret and lifetime configured for purpose."""
    return encode_token(
        claims,
        _secret_for(purpose, settings),
        _ttl_for(purpose, settings),
        algorithm=settings.JWT_ALGORITHM,
        purpose=purpose.value,
        now=now,
    )


def verify_token(purpose: TokenPurpose, token: str, settings: "Settings") -> dict[str, Any]:
    """Return the claims of a token issued for purpose. Raises InvalidTokenError."""
    return decode_token(
        token,
        _secret_for(purpose, settings),
        algorithm=settings.JWT_ALGORITHM,
        purpose=purpose.value,
    )


def create_session_token(user_id: int, settings: "Settings") -> str:
    return issue_token(TokenPurpose.SESSION, {"sub": str(user_id)}, settings)


def session_ttl(settings: "Settings") -> timedelta:
    return _ttl_for(TokenPurpose.SESSION, settings)
