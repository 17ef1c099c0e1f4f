from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.api.deps import get_caller
from app.database.database import get_db
from app.database.services.notification_service import NotificationService
from app.logic.access_control import Caller
from app.ReqResModels.common import ApiResponse, ErrorBody, PageParams, ok
from app.ReqResModels.notificationmodels import (
    NotificationResponse,
    NotificationListResponse,
    MarkAllReadResponse,
)

router = APIRouter(
    prefix="/notifications",
    tags=["notifications"],
    responses={
        404: {"model": ErrorBody, "description": "Notification not found"},
    }
)

@router.get(
    "",
    response_model=ApiResponse[NotificationListResponse],
    summary="List the caller's notifications",
    description="Newest first, with the number of unread notifications"
)
def get_notifications(
    params: PageParams = Depends(),
    unread_only: bool = Query(False, description="Only return unread notifications"),
    caller: Caller = Depends(get_caller),
    db: Session = Depends(get_db)
):
    return ok(NotificationService.get_notifications(db, caller, params, unread_only))

@router.put(
    "/read-all",
    response_model=ApiResponse[MarkAllReadResponse],
    summary="Mark every notification as read"
)
def mark_all_read(
    caller: Caller = Depends(get_caller),
    db: Session = Depends(get_db)
):
    return ok(NotificationService.mark_all_read(db, caller))

@router.put(
    "/{notification_id}/read",
    response_model=ApiResponse[NotificationResponse],
    summary="Mark a notification as read"
)
def mark_read(
    notification_id: int,
    caller: Caller = Depends(get_caller),
    db: Session = Depends(get_db)
):
    return ok(NotificationService.mark_read(db, caller, notification_id))

@router.delete(
    "/{notification_id}",
    response_model=ApiResponse[dict],
    summary="Delete a notification"
)
def delete_notification(
    notification_id: int,
    caller: Caller = Depends(get_caller),
    db: Session = Depends(get_db)
):
    NotificationService.delete_notification(db, caller, notification_id)
    return ok({"id": notification_id, "deleted": True})
