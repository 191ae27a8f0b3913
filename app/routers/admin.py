# File: app/routers/admin.py
from fastapi import APIRouter, BackgroundTasks, Depends
from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from app.core.clock import utcnow
from app.core.config import settings
from app.core.errors import ValidationError
from app.core.security import require_high_admin
from app.db.session import get_db
from app.models.app_settings import AppSettings
from app.models.issue import Issue, IssueStatus
from app.models.user import User
from app.routers.issues import issue_out, load_issue, publish_issue, render_issue, users_by_id
from app.schemas.issue import EscalateIn, IssueOut, ReassignIn
from app.services import assignment, escalation, notifications, workflow
from app.services.actors import actor_from_user
from app.services.dispatcher import IssueAssigned, IssueFacts, StatusChanged
from app.services.events import EventName

router = APIRouter(prefix="/admin", tags=["admin"])


@router.get("/dashboard")
def dashboard(db: Session = Depends(get_db), user: User = Depends(require_high_admin)):
    now = utcnow()
    days = AppSettings.load(db, settings.auto_escalate_days).auto_escalate_days
    live = db.query(Issue).filter(Issue.is_archived.is_(False))

    total = live.count()
    pending = live.filter(Issue.status.in_((IssueStatus.pending, IssueStatus.in_progress))).count()
    resolved = live.filter(Issue.status == IssueStatus.verified_solved).count()
    escalated = live.filter(Issue.status == IssueStatus.escalated).count()

    def grouped(column):
        rows = (
            db.query(column, func.count(Issue.id))
            .filter(Issue.is_archived.is_(False))
            .group_by(column)
            .order_by(func.count(Issue.id).desc())
            .all()
        )
        return [{"key": k.value if hasattr(k, "value") else k, "count": n} for k, n in rows]

    recent = live.order_by(Issue.created_at.desc(), Issue.id.desc()).limit(10).all()
    overdue_ids = [i.id for i in escalation.find_overdue(db, now, days)]
    attention = (
        live.filter(or_(Issue.status == IssueStatus.escalated, Issue.id.in_(overdue_ids)))
        .order_by(Issue.created_at.desc(), Issue.id.desc())
        .all()
    )

    users = users_by_id(db, [u for i in recent + attention for u in (i.reported_by_id, i.assigned_to_id)])
    viewer = actor_from_user(user)
    return {
        "overview": {
            "total_issues": total,
            "pending_issues": pending,
            "resolved_issues": resolved,
            "escalated_issues": escalated,
            "resolution_rate": round(resolved / total * 100, 2) if total else 0,
        },
        "issues_by_category": grouped(Issue.category),
        "issues_by_priority": grouped(Issue.priority),
        "issues_by_zone": grouped(Issue.zone),
        "recent_issues": [IssueOut.model_validate(issue_out(i, users, viewer, now, days)) for i in recent],
        "issues_requiring_attention": [
            IssueOut.model_validate(issue_out(i, users, viewer, now, days)) for i in attention
        ],
        "escalate_after_days": days,
    }


@router.post("/escalate-issue", response_model=IssueOut)
def escalate_issue(
    body: EscalateIn,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    user: User = Depends(require_high_admin),
):
    issue = load_issue(db, body.issue_id)
    if issue.status == IssueStatus.escalated:
        raise ValidationError("Issue is already escalated")
    reason = body.reason.strip()
    workflow.apply_transition(issue, IssueStatus.escalated, user.id, reason=reason, role=user.role)
    issue.escalation_reason = reason

    rows = notifications.dispatch(db, [StatusChanged(IssueFacts.of(issue), IssueStatus.escalated, reason)])
    db.commit()
    db.refresh(issue)

    notifications.announce(rows, background_tasks)
    publish_issue(EventName.issue_updated, issue)
    return render_issue(db, issue, actor_from_user(user))


@router.post("/reassign-issue", response_model=IssueOut)
def reassign_issue(
    body: ReassignIn,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    user: User = Depends(require_high_admin),
):
    issue = load_issue(db, body.issue_id)
    assignee = assignment.ensure_assignable(db.get(User, body.new_assignee_id))
    before = issue.status
    reason = f"Reassigned: {body.reason.strip()}" if body.reason and body.reason.strip() else "Reassigned"
    previous = assignment.assign(issue, assignee, user.id, reason=reason)

    facts = IssueFacts.of(issue)
    events = [IssueAssigned(facts, previous_assignee_id=previous)]
    if issue.status != before:
        events.append(StatusChanged(facts, issue.status))
    rows = notifications.dispatch(db, events)
    db.commit()
    db.refresh(issue)

    notifications.announce(rows, background_tasks)
    publish_issue(EventName.issue_updated, issue)
    return render_issue(db, issue, actor_from_user(user))


@router.post("/escalations/sweep")
def sweep_overdue(
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    user: User = Depends(require_high_admin),
):
    days = AppSettings.load(db, settings.auto_escalate_days).auto_escalate_days
    moved = escalation.sweep(db, user.id, days)
    events = [
        StatusChanged(IssueFacts.of(i), IssueStatus.escalated, i.escalation_reason)
        for i in moved
    ]
    rows = notifications.dispatch(db, events)
    db.commit()

    notifications.announce(rows, background_tasks)
    for i in moved:
        publish_issue(EventName.issue_updated, i)
    return {"escalated": [i.id for i in moved], "count": len(moved), "threshold_days": days}
