"""
Notifications API Router.
"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from database import get_db
from models import User
from schemas import NotificationItem, NotificationListResponse
from services import ServiceError, get_notifications, mark_notification_read
from .deps import get_current_user, handle_service_error

router = APIRouter()


@router.get(
    "/api/notifications",
    response_model=NotificationListResponse,
    tags=["Notifications"],
    summary="My notifications",
)
def list_notifications(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return get_notifications(db, current_user)


@router.patch(
    "/api/notifications/{notification_id}/read",
    response_model=NotificationItem,
    tags=["Notifications"],
    summary="Mark a notification read",
)
def read_notification(
    notification_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    try:
        return mark_notification_read(db, notification_id, current_user)
    except ServiceError as e:
        handle_service_error(e)
