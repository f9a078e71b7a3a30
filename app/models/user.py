"""ORM model for blog user accounts."""

from sqlalchemy import Column, DateTime, Integer, String, Text, func
from sqlalchemy.orm import validates

from app.models.base import Base

USERNAME_MAX_LEN = 32
NAME_MAX_LEN = 32

ROLE_USER = 0
ROLE_ADMIN = 1


class User(Base):
    """
    Blog user, created on signup activation or first Google login.

    password_hash is always derived from (salt, plaintext); plaintext is never stored.
    reset_password_link holds the pending reset token and is empty otherwise.
    """

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    username = Column(String(USERNAME_MAX_LEN), nullable=False, unique=True, index=True)
    name = Column(String(NAME_MAX_LEN), nullable=False)
    email = Column(String(255), nullable=False, unique=True, index=True)
    profile = Column(String(1024), nullable=False)
    password_hash = Column(String(255), nullable=False)
    salt = Column(String(64), nullable=True)
    about = Column(Text, nullable=True)
    role = Column(Integer, nullable=False, default=ROLE_USER)
    reset_password_link = Column(Text, nullable=False, default="")
    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    @validates("username", "email")
    def _normalize_identity(self, key: str, value: str) -> str:
        return value.strip().lower() if value is not None else value

    @validates("name")
    def _strip_name(self, key: str, value: str) -> str:
        return value.strip() if value is not None else value

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN
