# File: app/models/issue.py
from __future__ import annotations
from datetime import datetime
from enum import Enum as PyEnum
from sqlalchemy import String, Float, Enum, Boolean, DateTime, ForeignKey, JSON, func, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship
from app.db.base import Base
from app.models.attachment import IssueAttachment, AttachmentKind
from app.models.comment import IssueComment
from app.models.issue_activity import IssueStatusChange

class IssueStatus(PyEnum):
    pending = "pending"
    in_progress = "in_progress"
    pending_verification = "pending_verification"
    verified_solved = "verified_solved"
    escalated = "escalated"
    reopened = "reopened"

class IssueCategory(PyEnum):
    pothole = "pothole"
    streetlight = "streetlight"
    garbage = "garbage"
    water_leak = "water_leak"
    traffic_signal = "traffic_signal"
    road_damage = "road_damage"
    sewage = "sewage"
    parks = "parks"
    other = "other"

class IssuePriority(PyEnum):
    low = "low"
    medium = "medium"
    high = "high"
    urgent = "urgent"

class Issue(Base):
    __tablename__ = "issues"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(String(200), index=True)
    description: Mapped[str] = mapped_column(String(4000))
    category: Mapped[IssueCategory] = mapped_column(Enum(IssueCategory), index=True)
    priority: Mapped[IssuePriority] = mapped_column(Enum(IssuePriority), default=IssuePriority.medium, index=True)
    status: Mapped[IssueStatus] = mapped_column(Enum(IssueStatus), default=IssueStatus.pending, index=True)

    lat: Mapped[float] = mapped_column(Float)
    lng: Mapped[float] = mapped_column(Float)
    address: Mapped[str] = mapped_column(String(300))
    zone: Mapped[str] = mapped_column(String(120), index=True)

    reported_by_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), index=True, nullable=True)
    assigned_to_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), index=True, nullable=True)
    assigned_department: Mapped[str | None] = mapped_column(String(120), index=True, nullable=True)
    assigned_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    due_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    resolved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    verified_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    escalated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    escalation_reason: Mapped[str | None] = mapped_column(String(500), nullable=True)

    tags: Mapped[list | None] = mapped_column(JSON, nullable=True)
    is_archived: Mapped[bool] = mapped_column(Boolean, default=False, server_default="false", index=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), index=True)
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    history: Mapped[list[IssueStatusChange]] = relationship(
        IssueStatusChange, cascade="all, delete-orphan", order_by=IssueStatusChange.id
    )
    comments: Mapped[list[IssueComment]] = relationship(
        IssueComment, cascade="all, delete-orphan", order_by=IssueComment.id
    )
    attachments: Mapped[list[IssueAttachment]] = relationship(
        IssueAttachment, cascade="all, delete-orphan", order_by=IssueAttachment.id
    )

    @property
    def photos(self) -> list[str]:
        return [a.url for a in self.attachments if a.kind == AttachmentKind.photo]

    @property
    def work_proof(self) -> list[IssueAttachment]:
        return [a for a in self.attachments if a.kind == AttachmentKind.work_proof]

Index("ix_issues_lat_lng", Issue.lat, Issue.lng)
