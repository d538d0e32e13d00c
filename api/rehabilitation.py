"""
Rehabilitation API Router.
Clinician plan management and worker daily progress.
"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from database import get_db
from models import User
from schemas import (
    CompletionCreateRequest,
    CompletionResponse,
    PlanCreateRequest,
    PlanProgressResponse,
    PlanResponse,
    PlanUpdateRequest,
)
from services import (
    ServiceError,
    create_plan,
    get_plan_progress,
    get_worker_active_plan,
    record_completion,
    update_plan,
)
from .deps import handle_service_error, require_clinician, require_worker

router = APIRouter()


@router.post(
    "/api/clinician/rehabilitation-plans",
    response_model=PlanResponse,
    tags=["Clinician - Rehabilitation"],
    summary="Create a rehabilitation plan",
    description="Day 1 is start_date (default today). Rejected with 409 if the case already has an active plan.",
)
def create_rehabilitation_plan(
    request: PlanCreateRequest,
    current_user: User = Depends(require_clinician),
    db: Session = Depends(get_db),
):
    try:
        return create_plan(db, request, current_user)
    except ServiceError as e:
        handle_service_error(e)


@router.patch(
    "/api/clinician/rehabilitation-plans/{plan_id}",
    response_model=PlanResponse,
    tags=["Clinician - Rehabilitation"],
    summary="Edit a rehabilitation plan",
    description="Update dates, status (active/completed/cancelled) or notes.",
)
def update_rehabilitation_plan(
    plan_id: str,
    request: PlanUpdateRequest,
    current_user: User = Depends(require_clinician),
    db: Session = Depends(get_db),
):
    try:
        return update_plan(db, plan_id, request, current_user)
    except ServiceError as e:
        handle_service_error(e)


@router.get(
    "/api/clinician/rehabilitation-plans/{plan_id}/progress",
    response_model=PlanProgressResponse,
    tags=["Clinician - Rehabilitation"],
    summary="Plan progress",
)
def get_rehabilitation_progress(
    plan_id: str,
    current_user: User = Depends(require_clinician),
    db: Session = Depends(get_db),
):
    try:
        return get_plan_progress(db, plan_id, current_user)
    except ServiceError as e:
        handle_service_error(e)


@router.get(
    "/api/worker/rehabilitation-plan",
    response_model=PlanProgressResponse,
    tags=["Worker - Rehabilitation"],
    summary="My active plan",
    description="Active plan with the daily grid, current day and overall progress.",
)
def get_my_rehabilitation_plan(
    current_user: User = Depends(require_worker),
    db: Session = Depends(get_db),
):
    try:
        return get_worker_active_plan(db, current_user)
    except ServiceError as e:
        handle_service_error(e)


@router.post(
    "/api/worker/rehabilitation-plans/{plan_id}/completions",
    response_model=CompletionResponse,
    tags=["Worker - Rehabilitation"],
    summary="Mark an exercise done",
    description="Marks an exercise done for a day (default today). Repeating a mark is a no-op.",
)
def complete_exercise(
    plan_id: str,
    request: CompletionCreateRequest,
    current_user: User = Depends(require_worker),
    db: Session = Depends(get_db),
):
    try:
        return record_completion(db, plan_id, request, current_user)
    except ServiceError as e:
        handle_service_error(e)
