from datetime import datetime, timedelta, timezone

from app.models.issue import Issue, IssueCategory, IssueStatus
from app.services import escalation

NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


def _issue(status, assigned_days_ago=None, archived=False):
    assigned_at = NOW - timedelta(days=assigned_days_ago) if assigned_days_ago is not None else None
    return Issue(title="Sewage overflow", description="Manhole overflowing onto the street", zone="Zone A",
                 category=IssueCategory.sewage, lat=0.0, lng=0.0, address="3 Canal Rd", status=status,
                 assigned_at=assigned_at, is_archived=archived)


def test_overdue_after_threshold():
    assert escalation.is_overdue(_issue(IssueStatus.in_progress, 5), NOW, 5)
    assert not escalation.is_overdue(_issue(IssueStatus.in_progress, 4), NOW, 5)
    assert not escalation.is_overdue(_issue(IssueStatus.pending), NOW, 5)


def test_only_active_statuses_go_overdue():
    for status in (IssueStatus.pending_verification, IssueStatus.verified_solved, IssueStatus.escalated):
        assert not escalation.is_overdue(_issue(status, 30), NOW, 5)


def test_needs_attention_includes_escalated():
    assert escalation.needs_attention(_issue(IssueStatus.escalated), NOW, 5)
    assert escalation.needs_attention(_issue(IssueStatus.reopened, 6), NOW, 5)
    assert not escalation.needs_attention(_issue(IssueStatus.in_progress, 1), NOW, 5)


def test_naive_datetimes_are_treated_as_utc():
    issue = _issue(IssueStatus.in_progress)
    issue.assigned_at = (NOW - timedelta(days=6)).replace(tzinfo=None)
    assert escalation.is_overdue(issue, NOW, 5)


def test_sweep_escalates_overdue_issues_through_workflow(db):
    overdue = _issue(IssueStatus.in_progress, 7)
    fresh = _issue(IssueStatus.in_progress, 2)
    resolved = _issue(IssueStatus.pending_verification, 9)
    archived = _issue(IssueStatus.in_progress, 9, archived=True)
    db.add_all([overdue, fresh, resolved, archived])
    db.flush()

    moved = escalation.sweep(db, actor_id=None, days=5, now=NOW)

    assert moved == [overdue]
    assert overdue.status == IssueStatus.escalated
    assert overdue.escalated_at == NOW
    assert overdue.escalation_reason == "Overdue: no resolution after 5 days"
    assert overdue.history[-1].status == "escalated"
    assert fresh.status == IssueStatus.in_progress
    assert archived.status == IssueStatus.in_progress


def test_sweep_is_idempotent(db):
    db.add(_issue(IssueStatus.pending, 8))
    db.flush()
    assert len(escalation.sweep(db, None, 5, NOW)) == 1
    db.flush()
    assert escalation.sweep(db, None, 5, NOW) == []
