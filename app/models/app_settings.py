# File: app/models/app_settings.py

from datetime import datetime
from sqlalchemy import Boolean, DateTime, Integer, func
from sqlalchemy.orm import Mapped, mapped_column
from app.db.base import Base

class AppSettings(Base):
    __tablename__ = "app_settings"

    # single-row table pattern; enforce one row in code
    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)

    auto_assign_issues: Mapped[bool] = mapped_column(Boolean, default=True, server_default="true")
    auto_escalate_days: Mapped[int] = mapped_column(Integer, default=5, server_default="5")
    email_notifications_enabled: Mapped[bool] = mapped_column(Boolean, default=True, server_default="true")
    push_notifications_enabled: Mapped[bool] = mapped_column(Boolean, default=True, server_default="true")

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    @classmethod
    def load(cls, db, default_escalate_days: int = 5) -> "AppSettings":
        s = db.query(cls).order_by(cls.id.asc()).first()
        if not s:
            s = cls(
                auto_assign_issues=True,
                auto_escalate_days=default_escalate_days,
                email_notifications_enabled=True,
                push_notifications_enabled=True,
            )
            db.add(s)
            db.flush()
        return s
