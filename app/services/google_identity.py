"""Verify Google ID tokens through Google's tokeninfo endpoint."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import httpx

from app.core.config import get_settings

if TYPE_CHECKING:
    from app.core.config import Settings

logger = logging.getLogger(__name__)

GOOGLE_ISSUERS = frozenset({"accounts.google.com", "https://accounts.google.com"})


class IdentityTokenError(Exception):
    """Raised when an ID token cannot be verified (bad token, wrong audience, Google unreachable)."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


@dataclass(frozen=True)
class GoogleIdentity:
    email: str
    email_verified: bool
    name: str
    subject_id: str
    # Unique id of this assertion (jti); absent on some tokens
    token_id: str | None = None


def _as_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() == "true"


def parse_identity(claims: dict[str, Any], audience: str) -> GoogleIdentity:
    """Check audience and issuer of verified claims and extract the identity."""
    if claims.get("aud") != audience:
        raise IdentityTokenError("ID token was issued for a different client.")
    if claims.get("iss") not in GOOGLE_ISSUERS:
        raise IdentityTokenError("ID token was not issued by Google.")
    email = (claims.get("email") or "").strip()
    subject_id = str(claims.get("sub") or "").strip()
    if not email or not subject_id:
        raise IdentityTokenError("ID token is missing email or subject.")
    name = (claims.get("name") or "").strip() or email.split("@", 1)[0]
    return GoogleIdentity(
        email=email,
        email_verified=_as_bool(claims.get("email_verified")),
        name=name,
        subject_id=subject_id,
        token_id=claims.get("jti") or None,
    )


class GoogleIdentityVerifier:
    def __init__(self, settings: Settings) -> None:
        self.settings = settings

    async def verify(self, id_token: str, audience: str) -> GoogleIdentity:
        """
        Ask Google to validate the token signature and expiry, then check the audience.

        Raises IdentityTokenError on any failure.
        """
        if not id_token:
            raise IdentityTokenError("ID token is empty.")
        timeout = max(1.0, min(120.0, self.settings.GOOGLE_REQUEST_TIMEOUT_SEC))
        try:
            async with httpx.AsyncClient(timeout=timeout) as client:
                resp = await client.get(
                    self.settings.GOOGLE_TOKENINFO_URL,
                    params={"id_token": id_token},
                )
        except httpx.RequestError as e:
            logger.warning("Google tokeninfo request failed: %s", type(e).__name__)
            raise IdentityTokenError("Google could not be reached to verify the token.") from e

        if resp.status_code != 200:
            raise IdentityTokenError(f"Google rejected the ID token ({resp.status_code}).")
        try:
            claims = resp.json()
        except ValueError as e:
            raise IdentityTokenError("Google returned an invalid response.") from e
        if not isinstance(claims, dict):
            raise IdentityTokenError("Google returned an invalid response.")
        return parse_identity(claims, audience)


def get_identity_verifier() -> GoogleIdentityVerifier:
    """Dependency: verifier bound to the current settings."""
    return GoogleIdentityVerifier(get_settings())
