from sqlalchemy.orm import Session
import logging

from app.database.models.notification import Notification
from app.ReqResModels.notificationmodels import NotificationResponse, NotificationListResponse, MarkAllReadResponse
from app.logic.exceptions import NotificationNotFoundError, DatabaseError

logger = logging.getLogger(__name__)

class NotificationService:

    @staticmethod
    def get_user_notifications(db: Session, user_id: int, unread_only: bool = False) -> NotificationListResponse:
        """Get notifications for a user, newest first"""
        query = db.query(Notification).filter(Notification.user_id == user_id)
        unread_count = query.filter(Notification.is_read.is_(False)).count()

        if unread_only:
            query = query.filter(Notification.is_read.is_(False))

        notifications = query.order_by(Notification.created_at.desc(), Notification.id.desc()).all()

        return NotificationListResponse(
            notifications=[NotificationResponse.model_validate(n) for n in notifications],
            total_count=len(notifications),
            unread_count=unread_count
        )

    @staticmethod
    def mark_as_read(db: Session, notification_id: int) -> NotificationResponse:
        """Mark a single notification as read"""
        try:
            notification = db.query(Notification).filter(Notification.id == notification_id).first()
            if not notification:
                raise NotificationNotFoundError(f"Notification with ID {notification_id} not found")

            notification.is_read = True
            db.commit()
            db.refresh(notification)
            return NotificationResponse.model_validate(notification)

        except NotificationNotFoundError:
            db.rollback()
            raise
        except Exception as e:
            db.rollback()
            raise DatabaseError(f"Failed to update notification: {str(e)}")

    @staticmethod
    def mark_all_as_read(db: Session, user_id: int) -> MarkAllReadResponse:
        try:
            marked = db.query(Notification).filter(
                Notification.user_id == user_id,
                Notification.is_read.is_(False)
            ).update({Notification.is_read: True}, synchronize_session=False)
            db.commit()

            logger.info(f"Marked {marked} notification(s) of user {user_id} as read")
            return MarkAllReadResponse(user_id=user_id, marked_count=marked)

        except Exception as e:
            db.rollback()
            raise DatabaseError(f"Failed to update notifications: {str(e)}")
