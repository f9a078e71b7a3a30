"""Request/response schemas for auth endpoints."""

from pydantic import AliasChoices, BaseModel, ConfigDict, EmailStr, Field, field_validator

PASSWORD_MIN_LEN = 6
PASSWORD_MAX_LEN = 128


class PreSignupRequest(BaseModel):
    """Signup details; nothing is persisted until the activation link is used."""

    name: str = Field(..., min_length=1, max_length=32, description="Display name")
    email: EmailStr = Field(..., description="Email address")
    password: str = Field(
        ...,
        min_length=PASSWORD_MIN_LEN,
        max_length=PASSWORD_MAX_LEN,
        description="Password",
    )

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Name is required")
        return v.strip()


class SignupRequest(BaseModel):
    """Activation token from the emailed link. Missing token yields a retry message."""

    token: str | None = None


class SigninRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=PASSWORD_MIN_LEN, max_length=PASSWORD_MAX_LEN)


class ForgotPasswordRequest(BaseModel):
    email: EmailStr


class ResetPasswordRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    reset_password_link: str = Field(..., min_length=1, alias="resetPasswordLink")
    new_password: str = Field(
        ...,
        min_length=PASSWORD_MIN_LEN,
        max_length=PASSWORD_MAX_LEN,
        alias="newPassword",
    )


class GoogleLoginRequest(BaseModel):
    """Google ID token; web clients send it as tokenId."""

    id_token: str = Field(
        ...,
        min_length=1,
        validation_alias=AliasChoices("tokenId", "idToken", "id_token"),
    )


class MessageResponse(BaseModel):
    message: str


class UserPublic(BaseModel):
    """Redacted user projection (no password hash or salt)."""

    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    id: int = Field(..., alias="_id")
    username: str
    email: str
    role: int
    name: str


class SessionResponse(BaseModel):
    """Session token plus redacted user, returned by sign-in and Google login."""

    token: str
    user: UserPublic


class UserProfile(BaseModel):
    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    id: int = Field(..., alias="_id")
    username: str
    name: str
    email: str
    profile: str
    about: str | None = None
    role: int


class UsersListResponse(BaseModel):
    """Response for GET /users (admin only)."""

    users: list[UserPublic]
