"""Shared test helpers: in-memory user store, fast settings, recording collaborators."""

from unittest.mock import AsyncMock

from pydantic import SecretStr
from sqlalchemy.orm import Session
from sqlalchemy.pool import StaticPool

from app.core.config import Settings
from app.core.database import make_engine, make_session_factory
from app.models import Base
from app.services.google_identity import GoogleIdentity

CLIENT_URL = "https://blog.test"
GOOGLE_CLIENT_ID = "client-123.apps.googleusercontent.com"


def make_settings(**overrides: object) -> Settings:
    """Real Settings with cheap bcrypt rounds and distinct per-purpose secrets."""
    values: dict[str, object] = {
        "CLIENT_URL": CLIENT_URL,
        "BCRYPT_ROUNDS": 4,
        "JWT_SECRET": SecretStr("session-secret"),
        "JWT_ACCOUNT_ACTIVATION": SecretStr("activation-secret"),
        "JWT_RESET_PASSWORD": SecretStr("reset-secret"),
        "GOOGLE_CLIENT_ID": GOOGLE_CLIENT_ID,
        "SENDGRID_API_KEY": SecretStr("sg-key"),
        "EMAIL_FROM": "noreply@blog.test",
        "EMAIL_TO": "owner@blog.test",
    }
    values.update(overrides)
    return Settings(**values)


def make_session_factory_in_memory():
    """Session factory over a fresh in-memory SQLite database with all tables created."""
    engine = make_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    return make_session_factory(engine)


def make_db() -> Session:
    return make_session_factory_in_memory()()


def make_mailer() -> AsyncMock:
    """Mailer whose send() records messages and succeeds."""
    mailer = AsyncMock()
    mailer.send = AsyncMock(return_value=None)
    return mailer


def sent_token(mailer: AsyncMock, marker: str) -> str:
    """Extract the token from the link in the last email sent."""
    message = mailer.send.call_args[0][0]
    start = message.html.index(marker) + len(marker)
    end = message.html.index("</p>", start)
    return message.html[start:end]


def google_identity(**overrides: object) -> GoogleIdentity:
    values: dict[str, object] = {
        "email": "g@example.com",
        "email_verified": True,
        "name": "Gee User",
        "subject_id": "1099",
        "token_id": "jti-abc",
    }
    values.update(overrides)
    return GoogleIdentity(**values)


def make_verifier(identity: GoogleIdentity | None = None, error: Exception | None = None) -> AsyncMock:
    verifier = AsyncMock()
    if error is not None:
        verifier.verify = AsyncMock(side_effect=error)
    else:
        verifier.verify = AsyncMock(return_value=identity or google_identity())
    return verifier
