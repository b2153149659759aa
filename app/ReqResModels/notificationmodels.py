from pydantic import BaseModel, ConfigDict
from datetime import datetime
from typing import Optional, List

class NotificationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int
    expense_id: Optional[int] = None
    event_type: str
    message: str
    is_read: bool
    created_at: datetime

class NotificationListResponse(BaseModel):
    notifications: List[NotificationResponse]
    total_count: int
    unread_count: int

class MarkAllReadResponse(BaseModel):
    user_id: int
    marked_count: int
