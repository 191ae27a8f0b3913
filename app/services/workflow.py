# app/services/workflow.py
"""
Issue status state machine.

The edge table below is the single source of truth for which status moves
are legal. Who may request a move is decided in app.services.policy; this
module only answers whether the move exists and applies it.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from app.core.clock import utcnow
from app.core.errors import InvalidTransition
from app.models.issue import Issue, IssueStatus
from app.models.issue_activity import IssueStatusChange
from app.models.user import UserRole

logger = logging.getLogger(__name__)

INITIAL_STATUS = IssueStatus.pending

TRANSITIONS: dict[IssueStatus, frozenset[IssueStatus]] = {
    IssueStatus.pending: frozenset({IssueStatus.in_progress, IssueStatus.escalated}),
    IssueStatus.in_progress: frozenset({IssueStatus.pending_verification, IssueStatus.escalated}),
    IssueStatus.pending_verification: frozenset({IssueStatus.verified_solved, IssueStatus.reopened}),
    IssueStatus.verified_solved: frozenset({IssueStatus.reopened}),
    IssueStatus.escalated: frozenset({IssueStatus.in_progress, IssueStatus.pending_verification}),
    IssueStatus.reopened: frozenset({IssueStatus.in_progress, IssueStatus.escalated}),
}

# Everything still waiting on someone. Counts towards an assignee's workload.
OPEN_STATUSES = tuple(s for s in IssueStatus if s != IssueStatus.verified_solved)

# Statuses whose entry stamps a timestamp on the issue.
_STAMPS = {
    IssueStatus.pending_verification: "resolved_at",
    IssueStatus.verified_solved: "verified_at",
    IssueStatus.escalated: "escalated_at",
}


@dataclass(frozen=True)
class TransitionResult:
    allowed: bool
    current: IssueStatus
    requested: IssueStatus
    reason: Optional[str] = None


def _coerce(status) -> IssueStatus:
    if isinstance(status, IssueStatus):
        return status
    return IssueStatus(status)


def allowed_targets(current) -> frozenset[IssueStatus]:
    return TRANSITIONS[_coerce(current)]


def check_transition(current, requested, role: Optional[UserRole] = None) -> TransitionResult:
    """Is ``current -> requested`` an edge of the table? The answer is the same for every role."""
    current, requested = _coerce(current), _coerce(requested)
    if requested in TRANSITIONS[current]:
        return TransitionResult(True, current, requested)
    reason = f"Cannot move issue from {current.value} to {requested.value}"
    logger.debug("rejected transition %s -> %s (role=%s)", current.value, requested.value,
                 role.value if role else None)
    return TransitionResult(False, current, requested, reason)


def _append_history(issue: Issue, status: IssueStatus, actor_id: Optional[int],
                    reason: Optional[str], now: datetime) -> IssueStatusChange:
    entry = IssueStatusChange(status=status.value, changed_by_id=actor_id, changed_at=now, reason=reason)
    issue.history.append(entry)
    return entry


def record_initial_status(issue: Issue, actor_id: Optional[int], now: Optional[datetime] = None) -> IssueStatusChange:
    now = now or utcnow()
    issue.status = INITIAL_STATUS
    return _append_history(issue, INITIAL_STATUS, actor_id, "Issue reported", now)


def apply_transition(issue: Issue, requested, actor_id: Optional[int], reason: Optional[str] = None,
                     now: Optional[datetime] = None, role: Optional[UserRole] = None) -> IssueStatusChange:
    """
    Move ``issue`` to ``requested`` or raise InvalidTransition.

    Nothing on the issue is touched before the edge has been validated, so a
    rejected call leaves it exactly as it was.
    """
    result = check_transition(issue.status, requested, role)
    if not result.allowed:
        raise InvalidTransition(result.current.value, result.requested.value, result.reason)

    now = now or utcnow()
    target = result.requested
    entry = _append_history(issue, target, actor_id, reason, now)
    issue.status = target
    stamp = _STAMPS.get(target)
    if stamp:
        setattr(issue, stamp, now)
    issue.updated_at = now
    return entry
