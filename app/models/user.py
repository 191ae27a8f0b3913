# File: app/models/user.py

from __future__ import annotations
from enum import Enum as PyEnum
from sqlalchemy import String, Boolean, DateTime, Enum, ForeignKey, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column, relationship
from app.db.base import Base
from datetime import datetime

class UserRole(PyEnum):
    citizen = "citizen"
    low_admin = "low_admin"
    high_admin = "high_admin"

ADMIN_ROLES = (UserRole.low_admin, UserRole.high_admin)

class UserZone(Base):
    __tablename__ = "user_zones"
    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True)
    zone: Mapped[str] = mapped_column(String(120), index=True)
    __table_args__ = (UniqueConstraint("user_id", "zone", name="uq_user_zone"),)

class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, index=True)
    hashed_password: Mapped[str] = mapped_column(String(255))
    name: Mapped[str] = mapped_column(String(120), nullable=False, index=True)
    phone: Mapped[str | None] = mapped_column(String(30), nullable=True)
    role: Mapped[UserRole] = mapped_column(Enum(UserRole), nullable=False, default=UserRole.citizen, index=True)
    department: Mapped[str | None] = mapped_column(String(120), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, server_default="true")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    last_login: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    zone_rows: Mapped[list[UserZone]] = relationship(
        UserZone, cascade="all, delete-orphan", lazy="selectin", order_by=UserZone.id
    )

    @property
    def zones(self) -> list[str]:
        return [z.zone for z in self.zone_rows]

    def set_zones(self, zones: list[str]) -> None:
        wanted = []
        for z in zones:
            z = (z or "").strip()
            if z and z not in wanted:
                wanted.append(z)
        keep = [row for row in self.zone_rows if row.zone in wanted]
        have = {row.zone for row in keep}
        self.zone_rows = keep + [UserZone(zone=z) for z in wanted if z not in have]

    @property
    def is_admin(self) -> bool:
        return self.role in ADMIN_ROLES
