"""
Auth API Router.
"""
from fastapi import APIRouter, Depends

from models import User
from schemas import AuthMeResponse
from .deps import get_current_user

router = APIRouter()


@router.get(
    "/api/auth/me",
    response_model=AuthMeResponse,
    tags=["Auth"],
    summary="Current user",
    description="Returns the user authenticated by the X-API-Key header.",
)
def get_me(current_user: User = Depends(get_current_user)):
    """Get current user info."""
    return AuthMeResponse.model_validate(current_user)
