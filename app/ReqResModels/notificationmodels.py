from pydantic import BaseModel, ConfigDict
from datetime import datetime
from typing import Optional, List

# Response Models
class NotificationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    event_type: str
    expense_id: Optional[int] = None
    title: str
    message: str
    is_read: bool
    created_at: datetime

class NotificationListResponse(BaseModel):
    notifications: List[NotificationResponse]
    total: int
    unread_count: int
    page: int
    limit: int
    total_pages: int

class MarkAllReadResponse(BaseModel):
    updated: int
