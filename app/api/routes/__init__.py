"""API routes, mounted under API_PREFIX."""

from fastapi import APIRouter

from app.api.routes import auth, contact, health, user

router = APIRouter()
router.include_router(health.router, tags=["health"])
router.include_router(auth.router, tags=["auth"])
router.include_router(user.router, tags=["user"])
router.include_router(contact.router, tags=["contact"])
