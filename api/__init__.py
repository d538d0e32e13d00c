"""
API Router Package.
Domain-separated routers for better organization.
"""
from fastapi import APIRouter

from .deps import get_current_user, require_roles, handle_service_error, TAGS_METADATA
from .auth import router as auth_router
from .exceptions import router as exceptions_router
from .schedules import router as schedules_router
from .teams import router as teams_router
from .cases import router as cases_router
from .rehabilitation import router as rehabilitation_router
from .notifications import router as notifications_router

# Main router that includes all sub-routers
router = APIRouter()

router.include_router(auth_router)
router.include_router(exceptions_router)
router.include_router(schedules_router)
router.include_router(teams_router)
router.include_router(cases_router)
router.include_router(rehabilitation_router)
router.include_router(notifications_router)

__all__ = [
    "router",
    "TAGS_METADATA",
    "get_current_user",
    "require_roles",
    "handle_service_error",
]
