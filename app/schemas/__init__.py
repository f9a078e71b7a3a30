"""Pydantic request/response schemas."""

from app.schemas.auth import (
    ForgotPasswordRequest,
    GoogleLoginRequest,
    MessageResponse,
    PreSignupRequest,
    ResetPasswordRequest,
    SessionResponse,
    SigninRequest,
    SignupRequest,
    UserProfile,
    UserPublic,
    UsersListResponse,
)
from app.schemas.contact import ContactAuthorRequest, ContactRequest, ContactResponse
from app.schemas.health import HealthResponse

__all__ = [
    "ContactAuthorRequest",
    "ContactRequest",
    "ContactResponse",
    "ForgotPasswordRequest",
    "GoogleLoginRequest",
    "HealthResponse",
    "MessageResponse",
    "PreSignupRequest",
    "ResetPasswordRequest",
    "SessionResponse",
    "SigninRequest",
    "SignupRequest",
    "UserProfile",
    "UserPublic",
    "UsersListResponse",
]
