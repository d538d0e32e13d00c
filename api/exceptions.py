"""
Worker Exceptions API Router.
Injury, leave, transfer and other exceptions recorded by team leaders.
"""
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from database import get_db
from dates import today
from models import User, UserRole
from schemas import (
    ExceptionCreateRequest,
    ExceptionCreateResponse,
    ExceptionListResponse,
    ExceptionResponse,
    ExceptionUpdateRequest,
)
from services import (
    ServiceError,
    create_exception,
    get_active_exceptions,
    update_exception,
)
from .deps import get_current_user, handle_service_error, require_team_leader

router = APIRouter()


@router.post(
    "/api/exceptions",
    response_model=ExceptionCreateResponse,
    tags=["Exceptions"],
    summary="Record an exception",
    description="Records an exception for a worker in your team. The worker's previous active exception and active schedules are deactivated.",
)
def create_exception_entry(
    request: ExceptionCreateRequest,
    current_user: User = Depends(require_team_leader),
    db: Session = Depends(get_db),
):
    try:
        return create_exception(db, request, current_user)
    except ServiceError as e:
        handle_service_error(e)


@router.patch(
    "/api/exceptions/{exception_id}",
    response_model=ExceptionResponse,
    tags=["Exceptions"],
    summary="Edit an exception",
)
def update_exception_entry(
    exception_id: str,
    request: ExceptionUpdateRequest,
    current_user: User = Depends(require_team_leader),
    db: Session = Depends(get_db),
):
    try:
        return update_exception(db, exception_id, request, current_user)
    except ServiceError as e:
        handle_service_error(e)


@router.get(
    "/api/exceptions/active",
    response_model=ExceptionListResponse,
    tags=["Exceptions"],
    summary="Exceptions active on a day",
    description="Lists exceptions active on the given day (default today) for the teams you lead or supervise.",
)
def list_active_exceptions(
    on: Optional[date] = Query(None, description="YYYY-MM-DD, defaults to today"),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    try:
        return get_active_exceptions(db, current_user, on or today())
    except ServiceError as e:
        handle_service_error(e)
