from fastapi import APIRouter, Depends, HTTPException, Query, status as http_status
from sqlalchemy.orm import Session

from app.database.database import get_db
from app.database.services.notification_service import NotificationService
from app.ReqResModels.notificationmodels import NotificationResponse, NotificationListResponse, MarkAllReadResponse
from app.ReqResModels.errormodels import COMMON_RESPONSES
from app.logic.exceptions import NotificationNotFoundError, DatabaseError

router = APIRouter(
    prefix="/notifications",
    tags=["notifications"],
    responses=COMMON_RESPONSES
)

@router.get(
    "/user/{user_id}",
    response_model=NotificationListResponse,
    summary="Get a user's notifications"
)
def get_user_notifications(
    user_id: int,
    unread_only: bool = Query(False, description="Only unread notifications"),
    db: Session = Depends(get_db)
):
    return NotificationService.get_user_notifications(db, user_id, unread_only)

@router.put(
    "/user/{user_id}/read-all",
    response_model=MarkAllReadResponse,
    summary="Mark all of a user's notifications as read"
)
def mark_all_notifications_read(
    user_id: int,
    db: Session = Depends(get_db)
):
    try:
        return NotificationService.mark_all_as_read(db, user_id)
    except DatabaseError as e:
        raise HTTPException(
            status_code=http_status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=e.to_detail()
        )

@router.put(
    "/{notification_id}/read",
    response_model=NotificationResponse,
    summary="Mark a notification as read"
)
def mark_notification_read(
    notification_id: int,
    db: Session = Depends(get_db)
):
    try:
        return NotificationService.mark_as_read(db, notification_id)
    except NotificationNotFoundError as e:
        raise HTTPException(
            status_code=http_status.HTTP_404_NOT_FOUND,
            detail=e.to_detail()
        )
    except DatabaseError as e:
        raise HTTPException(
            status_code=http_status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=e.to_detail()
        )
