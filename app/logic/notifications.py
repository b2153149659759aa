"""
Fire-and-forget notification emission.

The approval engine calls `emit` after its transaction committed. A sink never
raises: a failed notification is logged and the workflow carries on.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional
import logging
import os

from sqlalchemy.orm import Session

from app.database.database import SessionLocal
from app.database.models.notification import Notification

logger = logging.getLogger(__name__)


class NotificationEventType(str, Enum):
    APPROVAL_REQUESTED = "approval_requested"
    EXPENSE_APPROVED = "expense_approved"
    EXPENSE_REJECTED = "expense_rejected"
    EXPENSE_AUTO_APPROVED = "expense_auto_approved"


@dataclass(frozen=True)
class NotificationEvent:
    event_type: NotificationEventType
    user_id: int
    expense_id: Optional[int]
    message: str


class NotificationSink:
    """Base sink; subclasses implement `_deliver`"""

    def emit(self, event: NotificationEvent) -> None:
        try:
            self._deliver(event)
        except Exception as e:
            logger.error(
                f"Failed to deliver {event.event_type.value} notification to user {event.user_id} "
                f"for expense {event.expense_id}: {e}"
            )

    def emit_all(self, events: List[NotificationEvent]) -> None:
        for event in events:
            self.emit(event)

    def _deliver(self, event: NotificationEvent) -> None:
        raise NotImplementedError


class LoggingNotificationSink(NotificationSink):
    def _deliver(self, event: NotificationEvent) -> None:
        logger.info(f"[notification] {event.event_type.value} -> user {event.user_id}: {event.message}")


class DatabaseNotificationSink(NotificationSink):
    """Stores in-app notifications using a session of its own"""

    def __init__(self, session_factory: Callable[[], Session]):
        self.session_factory = session_factory

    def _deliver(self, event: NotificationEvent) -> None:
        db = self.session_factory()
        try:
            db.add(Notification(
                user_id=event.user_id,
                expense_id=event.expense_id,
                event_type=event.event_type.value,
                message=event.message
            ))
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()


def get_notification_sink() -> NotificationSink:
    """FastAPI dependency; NOTIFICATION_SINK selects 'database' (default) or 'log'"""
    kind = os.getenv("NOTIFICATION_SINK", "database").lower()
    if kind == "log":
        return LoggingNotificationSink()
    return DatabaseNotificationSink(SessionLocal)
