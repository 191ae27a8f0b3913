# app/services/escalation.py
"""
Overdue detection and the escalation sweep.

An assigned issue that has sat in an active status for ``days`` or more
since assignment is overdue. ``is_overdue`` answers that on read; ``sweep``
escalates every overdue issue through the workflow engine.
"""
import logging
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from app.core.clock import as_utc, utcnow
from app.models.issue import Issue, IssueStatus
from app.services import workflow

logger = logging.getLogger(__name__)

OVERDUE_STATUSES = (IssueStatus.pending, IssueStatus.in_progress, IssueStatus.reopened)


def is_overdue(issue: Issue, now: datetime, days: int) -> bool:
    if issue.status not in OVERDUE_STATUSES or issue.assigned_at is None:
        return False
    return as_utc(now) - as_utc(issue.assigned_at) >= timedelta(days=days)


def needs_attention(issue: Issue, now: datetime, days: int) -> bool:
    return issue.status == IssueStatus.escalated or is_overdue(issue, now, days)


def overdue_reason(days: int) -> str:
    return f"Overdue: no resolution after {days} days"


def find_overdue(db: Session, now: datetime, days: int) -> list[Issue]:
    cutoff = as_utc(now) - timedelta(days=days)
    return (
        db.query(Issue)
        .filter(
            Issue.status.in_(OVERDUE_STATUSES),
            Issue.assigned_at.isnot(None),
            Issue.assigned_at <= cutoff,
            Issue.is_archived.is_(False),
        )
        .order_by(Issue.assigned_at.asc(), Issue.id.asc())
        .all()
    )


def sweep(db: Session, actor_id: Optional[int], days: int, now: Optional[datetime] = None) -> list[Issue]:
    """Escalate every overdue issue. Returns the issues that moved; the caller commits."""
    now = now or utcnow()
    reason = overdue_reason(days)
    escalated = []
    for issue in find_overdue(db, now, days):
        if not workflow.check_transition(issue.status, IssueStatus.escalated).allowed:
            continue
        workflow.apply_transition(issue, IssueStatus.escalated, actor_id, reason=reason, now=now)
        issue.escalation_reason = reason
        escalated.append(issue)
    logger.info("escalation sweep: %d issue(s) escalated (threshold %d days)", len(escalated), days)
    return escalated
