# app/services/assignment.py
import logging
from datetime import datetime
from typing import Mapping, Optional, Sequence

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.core.clock import utcnow
from app.core.errors import ValidationError
from app.models.issue import Issue, IssueStatus
from app.models.user import ADMIN_ROLES, User, UserRole, UserZone
from app.services import workflow

logger = logging.getLogger(__name__)


def pick_assignee(issue: Issue, candidates: Sequence[User], open_counts: Mapping[int, int]) -> Optional[User]:
    """
    Least-loaded active low admin covering the issue's zone.

    ``candidates`` may contain anybody; ineligible users are skipped here so
    the rule lives in one place. Ties go to whoever comes first.
    """
    best: Optional[User] = None
    best_load = None
    for user in candidates:
        if user.role != UserRole.low_admin or not user.is_active:
            continue
        if issue.zone not in user.zones:
            continue
        load = open_counts.get(user.id, 0)
        if best is None or load < best_load:
            best, best_load = user, load
    return best


def load_zone_admins(db: Session, zone: str) -> list[User]:
    return (
        db.query(User)
        .join(UserZone, UserZone.user_id == User.id)
        .filter(
            User.role == UserRole.low_admin,
            User.is_active.is_(True),
            UserZone.zone == zone,
        )
        .order_by(User.id.asc())
        .all()
    )


def open_issue_counts(db: Session, user_ids: Sequence[int]) -> dict[int, int]:
    if not user_ids:
        return {}
    rows = (
        db.query(Issue.assigned_to_id, func.count(Issue.id))
        .filter(
            Issue.assigned_to_id.in_(list(user_ids)),
            Issue.status.in_(workflow.OPEN_STATUSES),
            Issue.is_archived.is_(False),
        )
        .group_by(Issue.assigned_to_id)
        .all()
    )
    return {uid: count for uid, count in rows}


def _set_assignment(issue: Issue, assignee: User, department: Optional[str], now: datetime) -> None:
    issue.assigned_to_id = assignee.id
    issue.assigned_department = department or assignee.department
    issue.assigned_at = now
    issue.updated_at = now


def auto_assign(db: Session, issue: Issue, now: Optional[datetime] = None) -> Optional[User]:
    """
    Hand a freshly reported issue to the least busy admin of its zone.

    Returns the assignee, or None when nobody covers the zone. The latter is
    a normal outcome: the issue simply waits in ``pending``.
    """
    candidates = load_zone_admins(db, issue.zone)
    assignee = pick_assignee(issue, candidates, open_issue_counts(db, [u.id for u in candidates]))
    if assignee is None:
        logger.info("auto-assign: no eligible admin for issue %s in zone %r", issue.id, issue.zone)
        return None

    now = now or utcnow()
    _set_assignment(issue, assignee, None, now)
    workflow.apply_transition(issue, IssueStatus.in_progress, assignee.id, reason="Auto-assigned", now=now)
    logger.info("auto-assign: issue %s -> user %s", issue.id, assignee.id)
    return assignee


def ensure_assignable(user: Optional[User]) -> User:
    if user is None or user.role not in ADMIN_ROLES or not user.is_active:
        raise ValidationError("Invalid assigned user")
    return user


def assign(issue: Issue, assignee: User, actor_id: int, department: Optional[str] = None,
           due_date: Optional[datetime] = None, reason: Optional[str] = None,
           now: Optional[datetime] = None) -> Optional[int]:
    """
    Manual assignment or reassignment. Returns the previous assignee id.

    The issue moves to ``in_progress`` when the table allows it from the
    current status; an issue already in progress just changes hands.
    """
    ensure_assignable(assignee)
    if issue.status == IssueStatus.verified_solved:
        raise ValidationError("Cannot assign or reassign a resolved issue")
    now = now or utcnow()
    previous = issue.assigned_to_id
    target = IssueStatus.in_progress
    move = issue.status != target
    if move:
        result = workflow.check_transition(issue.status, target)
        move = result.allowed

    _set_assignment(issue, assignee, department, now)
    if due_date is not None:
        issue.due_date = due_date
    if move:
        workflow.apply_transition(issue, target, actor_id, reason=reason or "Issue assigned", now=now)
    return previous
