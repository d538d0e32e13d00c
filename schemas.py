"""
Pydantic v2 Schemas for API request/response validation.
"""
from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from models import CaseStatus, DayStatus, DutyType, ExceptionType, PlanStatus, UserRole


# Auth
class AuthMeResponse(BaseModel):
    id: int
    username: str
    full_name: Optional[str] = None
    role: UserRole
    team_id: Optional[int] = None
    is_active: bool

    model_config = {
        "from_attributes": True,
        "json_schema_extra": {
            "examples": [
                {
                    "id": 1,
                    "username": "clinician1",
                    "full_name": "Dana Reyes",
                    "role": "clinician",
                    "team_id": None,
                    "is_active": True,
                }
            ]
        },
    }


# Worker Exceptions
class ExceptionCreateRequest(BaseModel):
    """Record an injury, leave, transfer or other exception for a worker."""
    worker_id: int = Field(..., description="Worker user ID")
    exception_type: ExceptionType = Field(..., description="injury/medical_leave/accident/transfer/other")
    start_date: date = Field(..., description="First affected day (YYYY-MM-DD)")
    end_date: Optional[date] = Field(None, description="Last affected day; open-ended if omitted")
    reason: Optional[str] = Field(None, max_length=2000)
    transfer_to_team_id: Optional[int] = Field(None, description="Required for transfer")

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "worker_id": 7,
                    "exception_type": "injury",
                    "start_date": "2024-03-15",
                    "end_date": None,
                    "reason": "Lower back strain while lifting",
                }
            ]
        }
    }


class ExceptionUpdateRequest(BaseModel):
    exception_type: Optional[ExceptionType] = None
    reason: Optional[str] = Field(None, max_length=2000)
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    is_active: Optional[bool] = None


class ExceptionResponse(BaseModel):
    id: str
    worker_id: int
    team_id: Optional[int] = None
    exception_type: ExceptionType
    exception_type_label: str
    reason: Optional[str] = None
    start_date: date
    end_date: Optional[date] = None
    is_active: bool
    deactivated_at: Optional[datetime] = None
    created_at: datetime


class ExceptionCreateResponse(BaseModel):
    exception: ExceptionResponse
    transferred: bool = False
    deactivated_schedules: int = 0


class ExceptionListResponse(BaseModel):
    on: date
    exceptions: list[ExceptionResponse]


# Worker Schedules
TIME_PATTERN = r"^([01]?\d|2[0-3]):[0-5]\d(:[0-5]\d)?$"


class ScheduleCreateRequest(BaseModel):
    worker_id: int
    start_date: date
    end_date: date
    start_time: str = Field(..., pattern=TIME_PATTERN, description="HH:MM")
    end_time: str = Field(..., pattern=TIME_PATTERN, description="HH:MM")
    notes: Optional[str] = Field(None, max_length=2000)


class ScheduleUpdateRequest(BaseModel):
    """Only the fields sent are changed; is_active toggles the schedule."""
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    start_time: Optional[str] = Field(None, pattern=TIME_PATTERN, description="HH:MM")
    end_time: Optional[str] = Field(None, pattern=TIME_PATTERN, description="HH:MM")
    notes: Optional[str] = Field(None, max_length=2000)
    is_active: Optional[bool] = None


class ScheduleResponse(BaseModel):
    id: int
    worker_id: int
    team_id: Optional[int] = None
    start_date: date
    end_date: date
    start_time: str
    end_time: str
    notes: Optional[str] = None
    is_active: bool
    created_at: datetime

    model_config = {"from_attributes": True}


class ScheduleListResponse(BaseModel):
    schedules: list[ScheduleResponse]


# Team availability
class UnavailableWorkerItem(BaseModel):
    worker_id: int
    worker_name: str
    team_id: Optional[int] = None
    exception_id: str
    exception_type: ExceptionType
    exception_type_label: str
    start_date: date
    end_date: Optional[date] = None


class UnavailableWorkersResponse(BaseModel):
    on: date
    workers: list[UnavailableWorkerItem]


# Cases
class JournalEntryItem(BaseModel):
    status: CaseStatus
    updated_at: datetime
    updated_by: str
    updated_by_id: Optional[int] = None
    approved_by: Optional[str] = None
    approved_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class CaseAssignRequest(BaseModel):
    clinician_id: int = Field(..., description="Clinician user ID")


class CaseStatusUpdateRequest(BaseModel):
    """Request a case status transition."""
    # Plain string so unknown values reach the status rules (INVALID_STATUS)
    status: str = Field(..., description="new/triaged/assessed/in_rehab/return_to_work/closed")
    return_to_work_duty_type: Optional[str] = Field(None, description="modified/full")
    return_to_work_date: Optional[str] = Field(None, description="YYYY-MM-DD, today or later")
    expected_revision: Optional[int] = Field(None, description="Optimistic lock check")

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "status": "return_to_work",
                    "return_to_work_duty_type": "modified",
                    "return_to_work_date": "2024-04-01",
                    "expected_revision": 3,
                }
            ]
        }
    }


class CaseDetailResponse(BaseModel):
    id: str
    case_number: str
    worker_id: int
    worker_name: str
    team_id: Optional[int] = None
    exception_type: ExceptionType
    status: Optional[CaseStatus] = None
    is_active: bool
    start_date: date
    end_date: Optional[date] = None
    return_to_work_duty_type: Optional[DutyType] = None
    return_to_work_date: Optional[date] = None
    revision: int
    created_at: datetime
    journal: list[JournalEntryItem]


class CaseStatusUpdateResponse(BaseModel):
    case: CaseDetailResponse
    notifications_created: int


# Rehabilitation Plans
def strip_required_name(value: str) -> str:
    value = value.strip()
    if not value:
        raise ValueError("must not be blank")
    return value


class ExerciseInput(BaseModel):
    exercise_name: str = Field(..., min_length=1, max_length=255)
    repetitions: Optional[str] = Field(None, max_length=100)
    instructions: Optional[str] = Field(None, max_length=5000)
    video_url: Optional[str] = Field(None, max_length=500)

    @field_validator("exercise_name")
    @classmethod
    def strip_exercise_name(cls, value: str) -> str:
        return strip_required_name(value)


class ExerciseItem(BaseModel):
    id: str
    exercise_name: str
    repetitions: Optional[str] = None
    instructions: Optional[str] = None
    video_url: Optional[str] = None
    exercise_order: int

    model_config = {"from_attributes": True}


class PlanCreateRequest(BaseModel):
    """Create a rehabilitation plan for a case."""
    exception_id: str = Field(..., min_length=1, max_length=36)
    plan_name: str = Field(..., min_length=1, max_length=255)
    plan_description: Optional[str] = Field(None, max_length=2000)
    duration_days: int = Field(..., ge=1, le=365, description="Day 1 is start_date")
    start_date: Optional[date] = Field(None, description="Defaults to today")
    exercises: list[ExerciseInput] = Field(..., min_length=1, max_length=50)
    expected_revision: Optional[int] = Field(None, description="Case revision the caller last saw")

    @field_validator("plan_name")
    @classmethod
    def strip_plan_name(cls, value: str) -> str:
        return strip_required_name(value)


class PlanUpdateRequest(BaseModel):
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    status: Optional[PlanStatus] = None
    notes: Optional[str] = Field(None, max_length=5000)
    expected_revision: Optional[int] = Field(None, description="Case revision the caller last saw")


class PlanResponse(BaseModel):
    id: str
    exception_id: str
    clinician_id: int
    plan_name: str
    plan_description: Optional[str] = None
    start_date: date
    end_date: date
    status: PlanStatus
    notes: Optional[str] = None
    created_at: datetime
    exercises: list[ExerciseItem]

    model_config = {"from_attributes": True}


class DayProgressItem(BaseModel):
    day_number: int
    date: date
    status: DayStatus
    exercises_completed: int
    total_exercises: int
    is_fully_completed: bool

    model_config = {"from_attributes": True}


class PlanProgressResponse(BaseModel):
    plan: PlanResponse
    case_number: str
    worker_name: str
    duration: int
    current_day: int
    days_completed: int
    progress: int
    daily_progress: list[DayProgressItem]


class CompletionCreateRequest(BaseModel):
    exercise_id: str
    completion_date: Optional[date] = Field(None, description="Defaults to today")


class CompletionResponse(BaseModel):
    plan_id: str
    exercise_id: str
    completion_date: date
    created: bool


# Notifications
class NotificationItem(BaseModel):
    id: int
    type: str
    title: str
    message: str
    data_json: Optional[str] = None
    is_read: bool
    created_at: datetime

    model_config = {"from_attributes": True}


class NotificationListResponse(BaseModel):
    notifications: list[NotificationItem]
    unread_count: int
