from typing import List, Optional

from pydantic import BaseModel


class Notification(BaseModel):
    id: str
    title: str
    message: str
    type: Optional[str] = None
    user_id: Optional[str] = None
    is_read: bool = False
    created_at: Optional[str] = None


class NotificationBatch(BaseModel):
    session_id: str
    items: List[Notification]
    watermark: Optional[str] = None
