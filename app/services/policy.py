# app/services/policy.py
"""
Who may do what to an issue.

Every function here is a pure function of the actor, the issue and the
action. Nothing is loaded and nothing is written.
"""
from enum import Enum
from typing import Iterable, Optional

from sqlalchemy import false, or_, true

from app.core.errors import AccessDenied
from app.models.comment import IssueComment
from app.models.issue import Issue, IssueStatus
from app.services.actors import Actor, CitizenActor, HighAdminActor, LowAdminActor


class Action(str, Enum):
    view = "view"
    assign = "assign"
    update_status = "update_status"
    comment = "comment"
    add_work_proof = "add_work_proof"


# A reporter may only say "looks fixed" or "not fixed after all".
CITIZEN_REQUESTABLE = frozenset({IssueStatus.pending_verification, IssueStatus.reopened})


def _is_assignee(actor: Actor, issue: Issue) -> bool:
    return issue.assigned_to_id is not None and issue.assigned_to_id == actor.id


def _in_zone(actor: LowAdminActor, issue: Issue) -> bool:
    return bool(issue.zone) and issue.zone in actor.zones


def _same_department(actor: LowAdminActor, issue: Issue) -> bool:
    return bool(actor.department) and actor.department == issue.assigned_department


def _low_admin_allowed(actor: LowAdminActor, issue: Issue, action: Action) -> bool:
    if action == Action.add_work_proof:
        return _is_assignee(actor, issue)
    if _is_assignee(actor, issue) or _in_zone(actor, issue):
        return True
    if action in (Action.assign, Action.view):
        return _same_department(actor, issue)
    return False


def _citizen_allowed(actor: CitizenActor, issue: Issue, action: Action,
                     requested_status: Optional[IssueStatus]) -> bool:
    if issue.reported_by_id is None or issue.reported_by_id != actor.id:
        return False
    if action in (Action.view, Action.comment):
        return True
    if action == Action.update_status:
        return requested_status is not None and IssueStatus(requested_status) in CITIZEN_REQUESTABLE
    return False


def is_allowed(actor: Actor, issue: Issue, action: Action, requested_status=None) -> bool:
    action = Action(action)
    if isinstance(actor, HighAdminActor):
        return True
    if isinstance(actor, LowAdminActor):
        return _low_admin_allowed(actor, issue, action)
    if isinstance(actor, CitizenActor):
        return _citizen_allowed(actor, issue, action, requested_status)
    return False


def ensure_allowed(actor: Actor, issue: Issue, action: Action, requested_status=None) -> None:
    if not is_allowed(actor, issue, action, requested_status):
        raise AccessDenied()


def can_view(actor: Actor, issue: Issue) -> bool:
    return is_allowed(actor, issue, Action.view)


def can_assign(actor: Actor, issue: Issue) -> bool:
    return is_allowed(actor, issue, Action.assign)


def can_update_status(actor: Actor, issue: Issue, requested_status) -> bool:
    return is_allowed(actor, issue, Action.update_status, requested_status)


def can_comment(actor: Actor, issue: Issue) -> bool:
    return is_allowed(actor, issue, Action.comment)


def can_add_work_proof(actor: Actor, issue: Issue) -> bool:
    return is_allowed(actor, issue, Action.add_work_proof)


def comment_is_internal(actor: Actor, requested: bool) -> bool:
    if isinstance(actor, CitizenActor):
        return False
    return bool(requested)


def visible_comments(actor: Actor, comments: Iterable[IssueComment]) -> list[IssueComment]:
    if isinstance(actor, CitizenActor):
        return [c for c in comments if not c.is_internal]
    return list(comments)


def issue_scope_filter(actor: Actor):
    """SQL counterpart of ``can_view`` for list queries."""
    if isinstance(actor, HighAdminActor):
        return true()
    if isinstance(actor, LowAdminActor):
        clauses = [Issue.assigned_to_id == actor.id]
        if actor.zones:
            clauses.append(Issue.zone.in_(sorted(actor.zones)))
        if actor.department:
            clauses.append(Issue.assigned_department == actor.department)
        return or_(*clauses)
    if isinstance(actor, CitizenActor):
        return Issue.reported_by_id == actor.id
    return false()
