from sqlalchemy.orm import Session
import logging

from app.database.models.notification import Notification
from app.ReqResModels.common import PageParams, total_pages
from app.ReqResModels.notificationmodels import (
    NotificationResponse,
    NotificationListResponse,
    MarkAllReadResponse,
)
from app.logic.access_control import Caller
from app.logic.exceptions import (
    BaseCustomError,
    NotificationNotFoundError,
    DatabaseError,
)

logger = logging.getLogger(__name__)


class NotificationService:
    """The caller's in-app inbox. Notifications of other users look missing."""

    @staticmethod
    def _own(db: Session, caller: Caller):
        return db.query(Notification).filter(
            Notification.user_id == caller.id,
            Notification.company_id == caller.company_id
        )

    @staticmethod
    def _get_own(db: Session, caller: Caller, notification_id: int) -> Notification:
        notification = NotificationService._own(db, caller).filter(Notification.id == notification_id).first()
        if not notification:
            raise NotificationNotFoundError(f"Notification with ID {notification_id} not found")
        return notification

    @staticmethod
    def get_notifications(db: Session, caller: Caller, params: PageParams,
                          unread_only: bool = False) -> NotificationListResponse:
        query = NotificationService._own(db, caller)
        unread_count = query.filter(Notification.is_read.is_(False)).count()
        if unread_only:
            query = query.filter(Notification.is_read.is_(False))

        total = query.count()
        notifications = query.order_by(
            Notification.created_at.desc(), Notification.id.desc()
        ).offset(params.offset).limit(params.limit).all()

        return NotificationListResponse(
            notifications=[NotificationResponse.model_validate(n) for n in notifications],
            total=total,
            unread_count=unread_count,
            page=params.page,
            limit=params.limit,
            total_pages=total_pages(total, params.limit)
        )

    @staticmethod
    def mark_read(db: Session, caller: Caller, notification_id: int) -> NotificationResponse:
        try:
            notification = NotificationService._get_own(db, caller, notification_id)
            if not notification.is_read:
                notification.is_read = True
                db.commit()
                db.refresh(notification)
            return NotificationResponse.model_validate(notification)

        except Exception as e:
            db.rollback()
            if isinstance(e, BaseCustomError):
                raise e
            logger.error(f"Failed to mark notification {notification_id} as read: {e}")
            raise DatabaseError(f"Failed to update notification: {str(e)}")

    @staticmethod
    def mark_all_read(db: Session, caller: Caller) -> MarkAllReadResponse:
        try:
            updated = NotificationService._own(db, caller).filter(
                Notification.is_read.is_(False)
            ).update({Notification.is_read: True}, synchronize_session=False)
            db.commit()

            logger.info(f"Marked {updated} notifications read for user {caller.id}")
            return MarkAllReadResponse(updated=updated)

        except Exception as e:
            db.rollback()
            logger.error(f"Failed to mark notifications read for user {caller.id}: {e}")
            raise DatabaseError(f"Failed to update notifications: {str(e)}")

    @staticmethod
    def delete_notification(db: Session, caller: Caller, notification_id: int) -> None:
        try:
            notification = NotificationService._get_own(db, caller, notification_id)
            db.delete(notification)
            db.commit()

        except Exception as e:
            db.rollback()
            if isinstance(e, BaseCustomError):
                raise e
            logger.error(f"Failed to delete notification {notification_id}: {e}")
            raise DatabaseError(f"Failed to delete notification: {str(e)}")
