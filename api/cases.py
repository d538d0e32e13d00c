"""
Cases API Router.
Escalation to clinicians and case status transitions.
"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from database import get_db
from models import User
from schemas import (
    CaseAssignRequest,
    CaseDetailResponse,
    CaseStatusUpdateRequest,
    CaseStatusUpdateResponse,
)
from services import (
    ServiceError,
    assign_clinician,
    get_case_detail,
    update_case_status,
)
from .deps import handle_service_error, require_clinician, require_whs

router = APIRouter()


@router.post(
    "/api/whs/cases/{case_id}/assign",
    response_model=CaseDetailResponse,
    tags=["WHS - Cases"],
    summary="Assign a clinician",
    description="Escalates an exception to medical tracking by assigning it to a clinician.",
)
def assign_case(
    case_id: str,
    request: CaseAssignRequest,
    current_user: User = Depends(require_whs),
    db: Session = Depends(get_db),
):
    try:
        return assign_clinician(db, case_id, request.clinician_id, current_user)
    except ServiceError as e:
        handle_service_error(e)


@router.get(
    "/api/clinician/cases/{case_id}",
    response_model=CaseDetailResponse,
    tags=["Clinician - Cases"],
    summary="Case detail",
    description="Case number, current status, status journal and return-to-work fields.",
)
def get_case(
    case_id: str,
    current_user: User = Depends(require_clinician),
    db: Session = Depends(get_db),
):
    try:
        return get_case_detail(db, case_id, current_user)
    except ServiceError as e:
        handle_service_error(e)


@router.patch(
    "/api/clinician/cases/{case_id}/status",
    response_model=CaseStatusUpdateResponse,
    tags=["Clinician - Cases"],
    summary="Change case status",
    description=(
        "Applies a status transition. return_to_work requires a duty type and a "
        "return date (today or later) and, like closed, is blocked while a "
        "rehabilitation plan is active. A return_to_work case can only be closed. "
        "Send expected_revision to guard against concurrent edits (409 on mismatch)."
    ),
)
def update_status(
    case_id: str,
    request: CaseStatusUpdateRequest,
    current_user: User = Depends(require_clinician),
    db: Session = Depends(get_db),
):
    """
    Update case status.

    Error responses:
    - 400: rule violation, detail carries {code, message}
    - 403: case not assigned to you
    - 404: case not found
    - 409: revision conflict
    """
    try:
        return update_case_status(db, case_id, request, current_user)
    except ServiceError as e:
        handle_service_error(e)
