from typing import Optional
from fastapi import BackgroundTasks, Depends, Header
from sqlalchemy.orm import Session

from app.database.database import get_db
from app.database.services.user_service import UserService
from app.logic.access_control import Caller
from app.logic.notifications import (
    BackgroundNotificationEmitter,
    NotificationEmitter,
    build_default_emitter,
)

_default_emitter: Optional[NotificationEmitter] = None


def get_current_user(
    x_user_id: Optional[int] = Header(None, alias="X-User-Id", description="Authenticated user id set by the gateway"),
    db: Session = Depends(get_db)
):
    return UserService.resolve_caller(db, x_user_id)


def get_caller(user=Depends(get_current_user)) -> Caller:
    return Caller.from_user(user)


def get_notification_emitter() -> NotificationEmitter:
    global _default_emitter
    if _default_emitter is None:
        _default_emitter = build_default_emitter()
    return _default_emitter


def get_emitter(
    background_tasks: BackgroundTasks,
    delegate: NotificationEmitter = Depends(get_notification_emitter)
) -> NotificationEmitter:
    return BackgroundNotificationEmitter(background_tasks, delegate)
