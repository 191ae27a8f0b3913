# app/schemas/notification.py
from datetime import datetime
from typing import Literal, Optional
from pydantic import BaseModel

NotificationKind = Literal[
    "issue_created",
    "issue_assigned",
    "issue_updated",
    "issue_escalated",
    "issue_resolved",
    "verification_required",
    "issue_reopened",
    "comment_added",
    "status_changed",
]

class NotificationOut(BaseModel):
    id: int
    issue_id: Optional[int] = None
    type: NotificationKind
    title: str
    message: str
    priority: Literal["low", "medium", "high"]
    action_url: Optional[str] = None
    is_read: bool
    read_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

class NotificationPage(BaseModel):
    items: list[NotificationOut]
    total: int
    page: int
    limit: int
    unread_count: int
