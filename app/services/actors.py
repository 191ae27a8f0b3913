# app/services/actors.py
"""
The authenticated actor as seen by the policy layer.

Each role gets its own variant, so a citizen can never carry zones or a
department and a low admin always does.
"""
from dataclasses import dataclass, field
from typing import FrozenSet, Optional, Union

from app.models.user import User, UserRole


@dataclass(frozen=True)
class CitizenActor:
    id: int
    role: UserRole = field(default=UserRole.citizen, init=False)


@dataclass(frozen=True)
class LowAdminActor:
    id: int
    zones: FrozenSet[str] = frozenset()
    department: Optional[str] = None
    role: UserRole = field(default=UserRole.low_admin, init=False)


@dataclass(frozen=True)
class HighAdminActor:
    id: int
    department: Optional[str] = None
    role: UserRole = field(default=UserRole.high_admin, init=False)


Actor = Union[CitizenActor, LowAdminActor, HighAdminActor]


def actor_from_user(user: User) -> Actor:
    if user.role == UserRole.high_admin:
        return HighAdminActor(id=user.id, department=user.department)
    if user.role == UserRole.low_admin:
        return LowAdminActor(id=user.id, zones=frozenset(user.zones), department=user.department)
    return CitizenActor(id=user.id)
