"""Signed-in user's profile and the admin user list."""

from typing import Annotated

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.api.routes.auth import get_current_user, require_admin
from app.core.database import get_db
from app.models.user import User
from app.schemas.auth import UserProfile, UserPublic, UsersListResponse

router = APIRouter()


@router.get("/user/profile", response_model=UserProfile, response_model_by_alias=True)
def read_profile(
    current_user: Annotated[User, Depends(get_current_user)],
) -> UserProfile:
    return UserProfile.model_validate(current_user)


@router.get("/users", response_model=UsersListResponse, response_model_by_alias=True)
def list_users(
    _admin: Annotated[User, Depends(require_admin)],
    db: Annotated[Session, Depends(get_db)],
) -> UsersListResponse:
    """List all users (admin only)."""
    users = db.query(User).order_by(User.id).all()
    return UsersListResponse(users=[UserPublic.model_validate(u) for u in users])
