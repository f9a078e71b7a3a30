"""Request/response schemas for the contact forms."""

from pydantic import BaseModel, ConfigDict, EmailStr, Field

MESSAGE_MIN_LEN = 20


class ContactRequest(BaseModel):
    """Message sent to the site owner."""

    name: str = Field(..., min_length=1, max_length=64)
    email: EmailStr = Field(..., description="Sender email")
    message: str = Field(..., min_length=MESSAGE_MIN_LEN, max_length=5000)


class ContactAuthorRequest(ContactRequest):
    """Message sent to a blog's author (site owner copied)."""

    model_config = ConfigDict(populate_by_name=True)

    author_email: EmailStr = Field(..., alias="authorEmail", description="Author email")


class ContactResponse(BaseModel):
    success: bool = True
