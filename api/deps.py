"""
API Dependencies and shared utilities.
Authentication, authorization, error handling.
"""
from fastapi import Depends, Header, HTTPException
from sqlalchemy.orm import Session

from database import get_db
from models import User, UserRole
from services import (
    ServiceError,
    NotFoundError,
    ValidationError,
    ForbiddenError,
    ConflictError,
)

# =============================================================================
# API Tags Definition for OpenAPI/Swagger Documentation
# =============================================================================
TAGS_METADATA = [
    {
        "name": "Health",
        "description": "Service health checks. No authentication required.",
    },
    {
        "name": "Auth",
        "description": "API key authentication and current user lookup.",
    },
    {
        "name": "Exceptions",
        "description": "Team leader API for worker exceptions (injury, leave, transfer, ...).",
    },
    {
        "name": "Schedules",
        "description": "Team leader API for worker schedules. Blocked by active exceptions.",
    },
    {
        "name": "Teams",
        "description": "Team availability: who is out on a given day.",
    },
    {
        "name": "WHS - Cases",
        "description": "Control centre API. Escalates exceptions to clinicians.",
    },
    {
        "name": "Clinician - Cases",
        "description": "Case detail and status transitions for the assigned clinician.",
    },
    {
        "name": "Clinician - Rehabilitation",
        "description": "Rehabilitation plan management and progress for the assigned clinician.",
    },
    {
        "name": "Worker - Rehabilitation",
        "description": "Worker's active plan, daily progress and exercise completions.",
    },
    {
        "name": "Notifications",
        "description": "Own notifications, newest first.",
    },
]


def get_current_user(
    x_api_key: str = Header(..., alias="X-API-Key"),
    db: Session = Depends(get_db),
) -> User:
    """Authenticate user by API key."""
    user = db.query(User).filter(User.api_key == x_api_key, User.is_active == True).first()
    if not user:
        raise HTTPException(status_code=401, detail="Invalid or inactive API key")
    return user


def require_roles(*roles: UserRole):
    """Build a dependency that requires one of the given roles (ADMIN always passes)."""

    def dependency(user: User = Depends(get_current_user)) -> User:
        if user.role != UserRole.ADMIN and user.role not in roles:
            allowed = ", ".join(role.value for role in roles)
            raise HTTPException(status_code=403, detail=f"Requires role: {allowed}")
        return user

    return dependency


require_team_leader = require_roles(UserRole.TEAM_LEADER)
require_clinician = require_roles(UserRole.CLINICIAN)
require_whs = require_roles(UserRole.WHS_CONTROL_CENTER)
require_worker = require_roles(UserRole.WORKER)


def handle_service_error(e: ServiceError):
    """Convert service errors to HTTP exceptions."""
    if isinstance(e, NotFoundError):
        raise HTTPException(status_code=404, detail=e.message)
    elif isinstance(e, ValidationError):
        raise HTTPException(status_code=400, detail={"code": e.code, "message": e.message})
    elif isinstance(e, ForbiddenError):
        raise HTTPException(status_code=403, detail=e.message)
    elif isinstance(e, ConflictError):
        raise HTTPException(status_code=409, detail=e.message)
    else:
        raise HTTPException(status_code=500, detail=e.message)
