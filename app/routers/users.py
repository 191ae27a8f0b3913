# File: app/routers/users.py
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from app.core.clock import as_utc
from app.core.errors import AccessDenied, NotFound, ValidationError
from app.core.security import get_current_user, hash_password, require_high_admin
from app.db.session import get_db
from app.models.issue import Issue, IssueStatus
from app.models.user import User, UserRole, UserZone
from app.schemas.user import PaginatedUsersOut, UserCreate, UserOut, UserUpdate

router = APIRouter(prefix="/users", tags=["users"])

# fields only a high admin may touch
STAFF_FIELDS = ("zones", "department", "role", "is_active")

# still waiting on someone: neither verified nor escalated
PENDING_STATUSES = (IssueStatus.pending, IssueStatus.in_progress, IssueStatus.pending_verification,
                    IssueStatus.reopened)


def user_out(u: User) -> UserOut:
    return UserOut(
        id=u.id,
        email=u.email,
        name=u.name,
        phone=u.phone,
        role=u.role.value,
        department=u.department,
        zones=u.zones,
        is_active=u.is_active,
        created_at=u.created_at,
        last_login=u.last_login,
    )


def _load_user(db: Session, user_id: int) -> User:
    u = db.get(User, user_id)
    if not u:
        raise NotFound("User")
    return u


@router.get("", response_model=PaginatedUsersOut)
def list_users(
    db: Session = Depends(get_db),
    _: User = Depends(require_high_admin),
    q: Optional[str] = None,
    role: Optional[UserRole] = None,
    is_active: Optional[bool] = None,
    zone: Optional[str] = None,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
):
    query = db.query(User)
    if q:
        term = f"%{q.strip()}%"
        query = query.filter(or_(User.email.ilike(term), User.name.ilike(term)))
    if role:
        query = query.filter(User.role == role)
    if is_active is not None:
        query = query.filter(User.is_active.is_(is_active))
    if zone:
        query = query.filter(User.zone_rows.any(UserZone.zone == zone))

    total = query.count()
    rows = query.order_by(User.id.asc()).offset((page - 1) * limit).limit(limit).all()
    return {"items": [user_out(u) for u in rows], "total": total, "page": page, "limit": limit}


@router.post("", response_model=UserOut, status_code=201)
def create_staff(body: UserCreate, db: Session = Depends(get_db), _: User = Depends(require_high_admin)):
    email = body.email.strip().lower()
    if db.query(User).filter(User.email == email).first():
        raise ValidationError("Email already registered")
    u = User(
        email=email,
        name=body.name.strip(),
        hashed_password=hash_password(body.password),
        phone=body.phone,
        role=UserRole(body.role),
        department=body.department,
        is_active=True,
    )
    u.set_zones(body.zones)
    db.add(u)
    db.commit()
    db.refresh(u)
    return user_out(u)


@router.get("/{user_id}", response_model=UserOut)
def get_user(user_id: int, db: Session = Depends(get_db), me: User = Depends(get_current_user)):
    if me.id != user_id and not me.is_admin:
        raise AccessDenied()
    return user_out(_load_user(db, user_id))


@router.put("/{user_id}", response_model=UserOut)
def update_user(user_id: int, body: UserUpdate, db: Session = Depends(get_db),
                me: User = Depends(get_current_user)):
    is_high = me.role == UserRole.high_admin
    if me.id != user_id and not is_high:
        raise AccessDenied()
    changes = body.model_dump(exclude_unset=True)
    if not is_high and any(k in changes for k in STAFF_FIELDS):
        raise AccessDenied()

    u = _load_user(db, user_id)
    if me.id == user_id and (changes.get("is_active") is False or
                             ("role" in changes and changes["role"] != me.role.value)):
        raise ValidationError("Cannot change own role or deactivate self")

    if changes.get("name") is not None:
        u.name = changes["name"].strip()
    if "phone" in changes:
        u.phone = (changes["phone"] or "").strip() or None
    if "department" in changes:
        u.department = changes["department"] or None
    if changes.get("role") is not None:
        u.role = UserRole(changes["role"])
    if changes.get("is_active") is not None:
        u.is_active = changes["is_active"]
    if changes.get("zones") is not None:
        u.set_zones(changes["zones"])
    db.commit()
    db.refresh(u)
    return user_out(u)


@router.delete("/{user_id}", response_model=UserOut)
def deactivate_user(user_id: int, db: Session = Depends(get_db), me: User = Depends(require_high_admin)):
    if me.id == user_id:
        raise ValidationError("Cannot deactivate self")
    u = _load_user(db, user_id)
    u.is_active = False
    db.commit()
    db.refresh(u)
    return user_out(u)


def _rate(part: int, whole: int) -> float:
    return round(part / whole * 100, 2) if whole else 0


def _status_counts(db: Session, *criteria) -> dict[IssueStatus, int]:
    rows = (
        db.query(Issue.status, func.count(Issue.id))
        .filter(Issue.is_archived.is_(False), *criteria)
        .group_by(Issue.status)
        .all()
    )
    return dict(rows)


def _grouped(db: Session, column, key: str) -> list[dict]:
    rows = (
        db.query(column, func.count(Issue.id))
        .filter(Issue.is_archived.is_(False))
        .group_by(column)
        .order_by(func.count(Issue.id).desc())
        .all()
    )
    return [{key: k.value, "count": n} for k, n in rows]


@router.get("/{user_id}/stats")
def user_stats(user_id: int, db: Session = Depends(get_db), me: User = Depends(get_current_user)):
    """Personal figures: a citizen's own reports, an admin's workload, or the city-wide picture."""
    if me.role == UserRole.citizen and me.id != user_id:
        raise AccessDenied()
    u = _load_user(db, user_id)

    if u.role == UserRole.citizen:
        counts = _status_counts(db, Issue.reported_by_id == u.id)
        total = sum(counts.values())
        resolved = counts.get(IssueStatus.verified_solved, 0)
        return {
            "role": u.role.value,
            "total_reports": total,
            "resolved_reports": resolved,
            "pending_reports": sum(counts.get(s, 0) for s in PENDING_STATUSES),
            "resolution_rate": _rate(resolved, total),
        }

    if u.role == UserRole.low_admin:
        counts = _status_counts(db, Issue.assigned_to_id == u.id)
        assigned = sum(counts.values())
        resolved = counts.get(IssueStatus.verified_solved, 0)
        done = (
            db.query(Issue.assigned_at, Issue.verified_at)
            .filter(Issue.assigned_to_id == u.id, Issue.is_archived.is_(False),
                    Issue.status == IssueStatus.verified_solved,
                    Issue.assigned_at.isnot(None), Issue.verified_at.isnot(None))
            .all()
        )
        days = [(as_utc(v) - as_utc(a)).total_seconds() / 86400 for a, v in done]
        return {
            "role": u.role.value,
            "assigned_issues": assigned,
            "resolved_issues": resolved,
            "pending_issues": sum(counts.get(s, 0) for s in PENDING_STATUSES),
            "escalated_issues": counts.get(IssueStatus.escalated, 0),
            "resolution_rate": _rate(resolved, assigned),
            "avg_resolution_days": round(sum(days) / len(days), 1) if days else 0,
        }

    counts = _status_counts(db)
    total = sum(counts.values())
    resolved = counts.get(IssueStatus.verified_solved, 0)
    return {
        "role": u.role.value,
        "total_issues": total,
        "resolved_issues": resolved,
        "pending_issues": sum(counts.get(s, 0) for s in PENDING_STATUSES),
        "escalated_issues": counts.get(IssueStatus.escalated, 0),
        "resolution_rate": _rate(resolved, total),
        "issues_by_category": _grouped(db, Issue.category, "category"),
        "issues_by_priority": _grouped(db, Issue.priority, "priority"),
    }
