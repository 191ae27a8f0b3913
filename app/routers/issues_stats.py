# app/routers/issues_stats.py
from datetime import timedelta
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy import func
from sqlalchemy.orm import Session

from app.core.clock import as_utc, utcnow
from app.core.security import get_current_actor, require_admin
from app.db.session import get_db
from app.models.issue import Issue, IssueCategory, IssueStatus
from app.models.user import User, UserRole
from app.services.actors import Actor
from app.services.policy import issue_scope_filter
from app.services.workflow import OPEN_STATUSES

router = APIRouter(prefix="/issues/stats", tags=["issues:stats"], dependencies=[Depends(require_admin)])

# disjoint from OPEN_STATUSES
RESOLVED = frozenset(IssueStatus).difference(OPEN_STATUSES)


def range_to_dt(range_key: str):
    now = utcnow()
    if range_key == "today": return now.replace(hour=0, minute=0, second=0, microsecond=0)
    if range_key == "7d": return now - timedelta(days=7)
    if range_key == "30d": return now - timedelta(days=30)
    if range_key == "90d": return now - timedelta(days=90)
    if range_key == "year": return now.replace(month=1, day=1, hour=0, minute=0, second=0, microsecond=0)
    return None

def scoped(q, actor: Actor, range_key: str, category: Optional[IssueCategory] = None,
           zone: Optional[str] = None):
    """Restrict ``q`` to what the caller may see, the time window and filters."""
    q = q.filter(issue_scope_filter(actor), Issue.is_archived.is_(False))
    since = range_to_dt(range_key)
    if since:
        q = q.filter(Issue.created_at >= since)
    if category:
        q = q.filter(Issue.category == category)
    if zone:
        q = q.filter(Issue.zone == zone)
    return q

def _hours(start, end) -> Optional[float]:
    if not start or not end:
        return None
    return (as_utc(end) - as_utc(start)).total_seconds() / 3600

def _avg(values) -> Optional[float]:
    values = [v for v in values if v is not None]
    return round(sum(values) / len(values), 2) if values else None

@router.get("/summary")
def summary(range: str = Query("all"), zone: Optional[str] = None,
            db: Session = Depends(get_db), actor: Actor = Depends(get_current_actor)):
    q = scoped(db.query(Issue.status, func.count(Issue.id)), actor, range, zone=zone)
    counts = {s.value: 0 for s in IssueStatus}
    for status, n in q.group_by(Issue.status).all():
        counts[status.value] = n
    total = sum(counts.values())
    return {"total": total, "open": sum(counts[s.value] for s in OPEN_STATUSES), **counts}

@router.get("/by-category")
def by_category(range: str = Query("all"), zone: Optional[str] = None,
                db: Session = Depends(get_db), actor: Actor = Depends(get_current_actor)):
    q = scoped(db.query(Issue.category, func.count(Issue.id)), actor, range, zone=zone)
    q = q.group_by(Issue.category).order_by(func.count(Issue.id).desc())
    return [{"category": c.value, "count": n} for c, n in q.all()]

@router.get("/by-priority")
def by_priority(range: str = Query("all"), category: Optional[IssueCategory] = None,
                db: Session = Depends(get_db), actor: Actor = Depends(get_current_actor)):
    q = scoped(db.query(Issue.priority, func.count(Issue.id)), actor, range, category=category)
    q = q.group_by(Issue.priority).order_by(func.count(Issue.id).desc())
    return [{"priority": p.value, "count": n} for p, n in q.all()]

@router.get("/by-zone")
def by_zone(range: str = Query("all"), category: Optional[IssueCategory] = None,
            db: Session = Depends(get_db), actor: Actor = Depends(get_current_actor)):
    q = scoped(db.query(Issue.zone, Issue.status, func.count(Issue.id)), actor, range, category=category)
    by_zone: dict[str, dict[str, int]] = {}
    for zone, status, n in q.group_by(Issue.zone, Issue.status).all():
        row = by_zone.setdefault(zone, {"total": 0, "open": 0, "resolved": 0})
        row["total"] += n
        if status in OPEN_STATUSES:
            row["open"] += n
        if status in RESOLVED:
            row["resolved"] += n
    return [
        {"zone": zone, **data}
        for zone, data in sorted(by_zone.items(), key=lambda x: x[1]["total"], reverse=True)
    ]

@router.get("/admin-performance")
def admin_performance(range: str = Query("all"), db: Session = Depends(get_db),
                      actor: Actor = Depends(get_current_actor)):
    admins = (
        db.query(User)
        .filter(User.role.in_((UserRole.low_admin, UserRole.high_admin)), User.is_active.is_(True))
        .order_by(User.id.asc())
        .all()
    )
    issues = scoped(db.query(Issue), actor, range).filter(Issue.assigned_to_id.isnot(None)).all()
    by_admin: dict[int, list[Issue]] = {}
    for i in issues:
        by_admin.setdefault(i.assigned_to_id, []).append(i)

    out = []
    for u in admins:
        mine = by_admin.get(u.id, [])
        out.append({
            "user_id": u.id,
            "name": u.name,
            "role": u.role.value,
            "assigned": len(mine),
            "open": sum(1 for i in mine if i.status in OPEN_STATUSES),
            "resolved": sum(1 for i in mine if i.status in RESOLVED),
            "escalated": sum(1 for i in mine if i.status == IssueStatus.escalated),
            "avg_resolution_hours": _avg(_hours(i.assigned_at, i.resolved_at) for i in mine),
        })
    return out

@router.get("/resolution-time")
def resolution_time(range: str = Query("all"), category: Optional[IssueCategory] = None,
                    db: Session = Depends(get_db), actor: Actor = Depends(get_current_actor)):
    q = scoped(db.query(Issue), actor, range, category=category).filter(Issue.resolved_at.isnot(None))
    rows = q.all()
    per_category: dict[str, list[float]] = {}
    for i in rows:
        per_category.setdefault(i.category.value, []).append(_hours(i.created_at, i.resolved_at))
    return {
        "resolved_count": len(rows),
        "avg_hours": _avg(_hours(i.created_at, i.resolved_at) for i in rows),
        "by_category": [
            {"category": c, "count": len(v), "avg_hours": _avg(v)}
            for c, v in sorted(per_category.items())
        ],
    }
