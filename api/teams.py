"""
Team Availability API Router.
"""
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from database import get_db
from dates import today
from models import User, UserRole
from schemas import UnavailableWorkersResponse
from services import ServiceError, get_unavailable_workers
from .deps import handle_service_error, require_roles

router = APIRouter()

require_roster_viewer = require_roles(
    UserRole.TEAM_LEADER, UserRole.SUPERVISOR, UserRole.WHS_CONTROL_CENTER
)


@router.get(
    "/api/teams/unavailable",
    response_model=UnavailableWorkersResponse,
    tags=["Teams"],
    summary="Workers unavailable on a day",
    description="Workers with an exception active on the given day (default today), for the teams you lead or supervise.",
)
def list_unavailable_workers(
    on: Optional[date] = Query(None, description="YYYY-MM-DD, defaults to today"),
    current_user: User = Depends(require_roster_viewer),
    db: Session = Depends(get_db),
):
    try:
        return get_unavailable_workers(db, current_user, on or today())
    except ServiceError as e:
        handle_service_error(e)
