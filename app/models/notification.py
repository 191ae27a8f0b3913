# File: app/models/notification.py
from __future__ import annotations
from datetime import datetime
from enum import Enum as PyEnum
from sqlalchemy import String, Boolean, DateTime, Enum, ForeignKey, func, Index
from sqlalchemy.orm import Mapped, mapped_column
from app.db.base import Base

class NotificationType(PyEnum):
    issue_created = "issue_created"
    issue_assigned = "issue_assigned"
    issue_updated = "issue_updated"
    issue_escalated = "issue_escalated"
    issue_resolved = "issue_resolved"
    verification_required = "verification_required"
    issue_reopened = "issue_reopened"
    comment_added = "comment_added"
    status_changed = "status_changed"

class NotificationPriority(PyEnum):
    low = "low"
    medium = "medium"
    high = "high"

class Notification(Base):
    __tablename__ = "notifications"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    recipient_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True)
    issue_id: Mapped[int | None] = mapped_column(ForeignKey("issues.id", ondelete="CASCADE"), nullable=True)
    type: Mapped[NotificationType] = mapped_column(Enum(NotificationType), index=True)
    title: Mapped[str] = mapped_column(String(200))
    message: Mapped[str] = mapped_column(String(1000))
    priority: Mapped[NotificationPriority] = mapped_column(Enum(NotificationPriority), default=NotificationPriority.medium)
    action_url: Mapped[str | None] = mapped_column(String(300), nullable=True)
    is_read: Mapped[bool] = mapped_column(Boolean, default=False, server_default="false")
    read_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    def mark_read(self, now: datetime) -> None:
        if not self.is_read:
            self.is_read = True
            self.read_at = now

Index("ix_notifications_recipient_read", Notification.recipient_id, Notification.is_read, Notification.created_at)
