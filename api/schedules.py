"""
Worker Schedules API Router.
"""
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from database import get_db
from models import User
from schemas import (
    ScheduleCreateRequest,
    ScheduleListResponse,
    ScheduleResponse,
    ScheduleUpdateRequest,
)
from services import (
    ServiceError,
    create_schedule,
    get_my_schedules,
    list_schedules,
    update_schedule,
)
from .deps import handle_service_error, require_team_leader, require_worker

router = APIRouter()


@router.get(
    "/api/schedules",
    response_model=ScheduleListResponse,
    tags=["Schedules"],
    summary="List your team's schedules",
    description="Schedules of the team you lead, active and inactive. Filter by worker_id.",
)
def list_team_schedules(
    worker_id: Optional[int] = Query(None),
    current_user: User = Depends(require_team_leader),
    db: Session = Depends(get_db),
):
    try:
        return list_schedules(db, current_user, worker_id)
    except ServiceError as e:
        handle_service_error(e)


@router.get(
    "/api/schedules/me",
    response_model=ScheduleListResponse,
    tags=["Schedules"],
    summary="My schedule",
    description="Your active schedules overlapping the range (default: today and the next 7 days).",
)
def my_schedule(
    start_date: Optional[date] = Query(None, description="YYYY-MM-DD, defaults to today"),
    end_date: Optional[date] = Query(None, description="YYYY-MM-DD, defaults to start_date + 7"),
    current_user: User = Depends(require_worker),
    db: Session = Depends(get_db),
):
    try:
        return get_my_schedules(db, current_user, start_date, end_date)
    except ServiceError as e:
        handle_service_error(e)


@router.post(
    "/api/schedules",
    response_model=ScheduleResponse,
    tags=["Schedules"],
    summary="Create a worker schedule",
    description="Rejected with 409 when the worker has an exception active during the range.",
)
def create_schedule_entry(
    request: ScheduleCreateRequest,
    current_user: User = Depends(require_team_leader),
    db: Session = Depends(get_db),
):
    try:
        return create_schedule(db, request, current_user)
    except ServiceError as e:
        handle_service_error(e)


@router.patch(
    "/api/schedules/{schedule_id}",
    response_model=ScheduleResponse,
    tags=["Schedules"],
    summary="Edit or toggle a worker schedule",
    description="Rejected with 409 while the worker has an exception active today or during the new range. Deactivating is always allowed.",
)
def update_schedule_entry(
    schedule_id: int,
    request: ScheduleUpdateRequest,
    current_user: User = Depends(require_team_leader),
    db: Session = Depends(get_db),
):
    try:
        return update_schedule(db, schedule_id, request, current_user)
    except ServiceError as e:
        handle_service_error(e)
