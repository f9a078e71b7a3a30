"""Salted password credentials: derive and verify a one-way hash, never store plaintext.

Two schemes are supported. ``bcrypt`` is used for new credentials by default.
``hmac-sha1`` reproduces the legacy format (hex HMAC-SHA1 of the password keyed
with a numeric salt) so accounts migrated from the previous service keep working.
Verification picks the scheme from the stored hash, so both kinds can coexist.
"""

import hashlib
import hmac
import random
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING

import bcrypt

if TYPE_CHECKING:
    from app.core.config import Settings

SCHEME_BCRYPT = "bcrypt"
SCHEME_HMAC_SHA1 = "hmac-sha1"

# Stored in place of a hash when no plaintext was supplied; never matches anything.
NO_PASSWORD = ""

# bcrypt only looks at the first 72 bytes.
BCRYPT_MAX_BYTES = 72

_random = random.SystemRandom()


@dataclass(frozen=True)
class PasswordCredential:
    """Salt and hash pair stored on the user record."""

    salt: str
    password_hash: str

    @property
    def is_empty(self) -> bool:
        return self.password_hash == NO_PASSWORD


def make_legacy_salt() -> str:
    """Millisecond clock scaled by a random multiplier, as a decimal string."""
    return str(round(time.time() * 1000 * _random.random()))


def legacy_hash(plain_password: str | None, salt: str) -> str:
    """HMAC-SHA1 hex digest keyed by salt; NO_PASSWORD when there is nothing to hash."""
    if plain_password is None or not salt:
        return NO_PASSWORD
    return hmac.new(
        salt.encode("utf-8"),
        plain_password.encode("utf-8"),
        hashlib.sha1,
    ).hexdigest()


def _is_bcrypt_hash(password_hash: str) -> bool:
    return password_hash.startswith(("$2a$", "$2b$", "$2y$"))


class CredentialStore:
    """Creates and checks password credentials for one configured scheme."""

    def __init__(self, scheme: str = SCHEME_BCRYPT, bcrypt_rounds: int = 12) -> None:
        if scheme not in (SCHEME_BCRYPT, SCHEME_HMAC_SHA1):
            raise ValueError(f"Unknown password scheme: {scheme}")
        self.scheme = scheme
        self.bcrypt_rounds = bcrypt_rounds

    def set_password(self, plain_password: str | None) -> PasswordCredential:
        """Return a fresh salt and the matching hash. The salt is never reused."""
        if self.scheme == SCHEME_BCRYPT:
            salt = bcrypt.gensalt(rounds=self.bcrypt_rounds).decode("utf-8")
            if plain_password is None:
                return PasswordCredential(salt=salt, password_hash=NO_PASSWORD)
            pw_bytes = plain_password.encode("utf-8")[:BCRYPT_MAX_BYTES]
            hashed = bcrypt.hashpw(pw_bytes, salt.encode("utf-8")).decode("utf-8")
            return PasswordCredential(salt=salt, password_hash=hashed)
        salt = make_legacy_salt()
        return PasswordCredential(salt=salt, password_hash=legacy_hash(plain_password, salt))

    def set_federated_password(self, assertion_id: str) -> PasswordCredential:
        """
        Credential for an account provisioned through a third-party identity.

        The identity assertion id is used as password material so the account
        always has a hash on record; the user never learns or types it.
        """
        return self.set_password(assertion_id)

    def verify_password(
        self,
        plain_password: str | None,
        salt: str | None,
        password_hash: str | None,
    ) -> bool:
        if plain_password is None or not password_hash or password_hash == NO_PASSWORD:
            return False
        if _is_bcrypt_hash(password_hash):
            pw_bytes = plain_password.encode("utf-8")[:BCRYPT_MAX_BYTES]
            try:
                return bcrypt.checkpw(pw_bytes, password_hash.encode("utf-8"))
            except (ValueError, TypeError):
                return False
        candidate = legacy_hash(plain_password, salt or "")
        if candidate == NO_PASSWORD:
            return False
        return hmac.compare_digest(candidate, password_hash)


def get_credential_store(settings: "Settings") -> CredentialStore:
    return CredentialStore(settings.PASSWORD_SCHEME, settings.BCRYPT_ROUNDS)
