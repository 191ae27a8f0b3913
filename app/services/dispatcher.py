# app/services/dispatcher.py
"""
Maps workflow events to notification records.

``notifications_for`` is a pure function: the caller loads the staff
directory, hands over an event, and persists whatever comes back. Calling it
twice with the same inputs gives the same list.
"""
from dataclasses import dataclass
from typing import Optional, Sequence, Union

from sqlalchemy.orm import Session

from app.models.issue import Issue, IssuePriority, IssueStatus
from app.models.notification import NotificationPriority, NotificationType
from app.models.user import ADMIN_ROLES, User, UserRole


@dataclass(frozen=True)
class IssueFacts:
    """The handful of issue fields notifications are built from."""
    id: int
    title: str
    category: str
    zone: str
    priority: IssuePriority
    reporter_id: Optional[int]
    assignee_id: Optional[int]

    @classmethod
    def of(cls, issue: Issue) -> "IssueFacts":
        category = issue.category.value if hasattr(issue.category, "value") else str(issue.category)
        return cls(
            id=issue.id,
            title=issue.title,
            category=category,
            zone=issue.zone,
            priority=IssuePriority(issue.priority or IssuePriority.medium),
            reporter_id=issue.reported_by_id,
            assignee_id=issue.assigned_to_id,
        )


@dataclass(frozen=True)
class IssueCreated:
    issue: IssueFacts


@dataclass(frozen=True)
class IssueAssigned:
    issue: IssueFacts
    previous_assignee_id: Optional[int] = None
    auto: bool = False


@dataclass(frozen=True)
class StatusChanged:
    issue: IssueFacts
    status: IssueStatus
    reason: Optional[str] = None


@dataclass(frozen=True)
class CommentAdded:
    issue: IssueFacts
    author_id: int


WorkflowEvent = Union[IssueCreated, IssueAssigned, StatusChanged, CommentAdded]


@dataclass(frozen=True)
class StaffDirectory:
    admin_ids: tuple[int, ...] = ()
    high_admin_ids: tuple[int, ...] = ()


@dataclass(frozen=True)
class NotificationDraft:
    recipient_id: int
    issue_id: int
    type: NotificationType
    title: str
    message: str
    priority: NotificationPriority
    action_url: str


def load_staff_directory(db: Session) -> StaffDirectory:
    rows = (
        db.query(User.id, User.role)
        .filter(User.role.in_(ADMIN_ROLES), User.is_active.is_(True))
        .order_by(User.id.asc())
        .all()
    )
    return StaffDirectory(
        admin_ids=tuple(uid for uid, _ in rows),
        high_admin_ids=tuple(uid for uid, role in rows if role == UserRole.high_admin),
    )


class _Batch:
    """Collects drafts for one event; one record per recipient, first one wins."""

    def __init__(self, issue: IssueFacts):
        self.issue = issue
        self.drafts: list[NotificationDraft] = []
        self._seen: set[int] = set()

    def add(self, recipient_id: Optional[int], type_: NotificationType, title: str, message: str,
            priority: NotificationPriority = NotificationPriority.medium) -> None:
        if recipient_id is None or recipient_id in self._seen:
            return
        self._seen.add(recipient_id)
        if self.issue.priority == IssuePriority.urgent:
            priority = NotificationPriority.high
        self.drafts.append(NotificationDraft(
            recipient_id=recipient_id,
            issue_id=self.issue.id,
            type=type_,
            title=title,
            message=message,
            priority=priority,
            action_url=f"/issues/{self.issue.id}",
        ))

    def add_all(self, recipient_ids: Sequence[int], *args, **kwargs) -> None:
        for rid in recipient_ids:
            self.add(rid, *args, **kwargs)


def _readable(category: str) -> str:
    return category.replace("_", " ")


def _created(event: IssueCreated, staff: StaffDirectory, out: _Batch) -> None:
    issue = event.issue
    out.add_all(
        staff.admin_ids,
        NotificationType.issue_created,
        "New Issue Reported",
        f"A new {_readable(issue.category)} issue has been reported in {issue.zone}",
    )


def _assigned(event: IssueAssigned, staff: StaffDirectory, out: _Batch) -> None:
    issue = event.issue
    reassigned = event.previous_assignee_id is not None and event.previous_assignee_id != issue.assignee_id
    if event.auto:
        title, message = "Issue Auto-Assigned", f"A new {_readable(issue.category)} issue has been auto-assigned to you"
    elif reassigned:
        title, message = "Issue Reassigned to You", f'Issue "{issue.title}" has been reassigned to you'
    else:
        title, message = "Issue Assigned", f"You have been assigned a new {_readable(issue.category)} issue"
    out.add(issue.assignee_id, NotificationType.issue_assigned, title, message)
    if reassigned:
        out.add(
            event.previous_assignee_id,
            NotificationType.issue_updated,
            "Issue Reassigned",
            f'Issue "{issue.title}" has been reassigned to another admin',
            NotificationPriority.low,
        )


def _status_changed(event: StatusChanged, staff: StaffDirectory, out: _Batch) -> None:
    issue = event.issue
    status = IssueStatus(event.status)
    if status == IssueStatus.in_progress:
        out.add(issue.reporter_id, NotificationType.issue_updated, "Issue In Progress",
                f'Your reported issue "{issue.title}" is now being worked on')
    elif status == IssueStatus.pending_verification:
        out.add(issue.reporter_id, NotificationType.verification_required,
                "Issue Resolution Pending Verification",
                f'Your reported issue "{issue.title}" has been marked as resolved and is pending verification')
        out.add_all(staff.high_admin_ids, NotificationType.verification_required, "Verification Required",
                    f'Issue "{issue.title}" requires verification', NotificationPriority.high)
    elif status == IssueStatus.verified_solved:
        out.add(issue.reporter_id, NotificationType.issue_resolved, "Issue Resolved",
                f'Your reported issue "{issue.title}" has been verified as resolved')
    elif status == IssueStatus.escalated:
        message = f'Issue "{issue.title}" has been escalated and requires your attention'
        if event.reason:
            message = f'Issue "{issue.title}" has been escalated: {event.reason}'
        out.add_all(staff.high_admin_ids, NotificationType.issue_escalated, "Issue Escalated", message,
                    NotificationPriority.high)
        out.add(issue.assignee_id, NotificationType.issue_escalated, "Issue Escalated", message,
                NotificationPriority.high)
    elif status == IssueStatus.reopened:
        out.add(issue.assignee_id, NotificationType.issue_reopened, "Issue Reopened",
                f'Issue "{issue.title}" has been reopened', NotificationPriority.high)


def _comment_added(event: CommentAdded, staff: StaffDirectory, out: _Batch) -> None:
    issue = event.issue
    message = f"A new comment was added to issue: {issue.title}"
    out.add(issue.reporter_id, NotificationType.comment_added, "New Comment", message)
    out.add(issue.assignee_id, NotificationType.comment_added, "New Comment", message)


_HANDLERS = {
    IssueCreated: _created,
    IssueAssigned: _assigned,
    StatusChanged: _status_changed,
    CommentAdded: _comment_added,
}


def notifications_for(event: WorkflowEvent, staff: StaffDirectory) -> list[NotificationDraft]:
    handler = _HANDLERS.get(type(event))
    if handler is None:
        raise TypeError(f"unsupported event {type(event).__name__}")
    batch = _Batch(event.issue)
    handler(event, staff, batch)
    return batch.drafts
