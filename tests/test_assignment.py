from datetime import datetime, timezone

import pytest

from app.core.errors import ValidationError
from app.models.issue import Issue, IssueCategory, IssueStatus
from app.models.user import User, UserRole
from app.services import assignment, workflow

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def _user(uid, role=UserRole.low_admin, zones=("Zone A",), active=True):
    u = User(id=uid, email=f"u{uid}@newcivic.org", name=f"U{uid}", role=role, is_active=active)
    u.set_zones(list(zones))
    return u


def _issue(zone="Zone A", status=IssueStatus.pending):
    return Issue(title="Pothole", zone=zone, status=status, category=IssueCategory.pothole)


def test_pick_least_loaded():
    a, b, c = _user(1), _user(2), _user(3)
    assert assignment.pick_assignee(_issue(), [a, b, c], {1: 4, 2: 1, 3: 2}) is b


def test_tie_goes_to_first_candidate():
    a, b = _user(1), _user(2)
    assert assignment.pick_assignee(_issue(), [a, b], {1: 2, 2: 2}) is a
    assert assignment.pick_assignee(_issue(), [a, b], {}) is a


def test_ineligible_candidates_are_skipped():
    candidates = [
        _user(1, role=UserRole.high_admin),
        _user(2, active=False),
        _user(3, zones=("Zone B",)),
        _user(4, role=UserRole.citizen),
    ]
    assert assignment.pick_assignee(_issue(), candidates, {}) is None
    assert assignment.pick_assignee(_issue(), [], {}) is None


def test_ensure_assignable():
    assert assignment.ensure_assignable(_user(1)).id == 1
    assert assignment.ensure_assignable(_user(2, role=UserRole.high_admin)).id == 2
    for bad in (None, _user(3, role=UserRole.citizen), _user(4, active=False)):
        with pytest.raises(ValidationError):
            assignment.ensure_assignable(bad)


def test_assign_moves_pending_to_in_progress():
    issue = _issue()
    previous = assignment.assign(issue, _user(1), actor_id=9, department="roads", now=NOW)
    assert previous is None
    assert issue.status == IssueStatus.in_progress
    assert (issue.assigned_to_id, issue.assigned_department, issue.assigned_at) == (1, "roads", NOW)
    assert issue.history[-1].reason == "Issue assigned"


def test_reassign_in_progress_keeps_status_and_returns_previous():
    issue = _issue(status=IssueStatus.in_progress)
    issue.assigned_to_id = 1
    previous = assignment.assign(issue, _user(2), actor_id=9, now=NOW)
    assert previous == 1
    assert issue.assigned_to_id == 2
    assert issue.status == IssueStatus.in_progress
    assert issue.history == []


def test_assign_from_pending_verification_only_changes_hands():
    issue = _issue(status=IssueStatus.pending_verification)
    assignment.assign(issue, _user(2), actor_id=9, now=NOW)
    assert issue.status == IssueStatus.pending_verification
    assert issue.assigned_to_id == 2


def test_cannot_assign_verified_issue():
    issue = _issue(status=IssueStatus.verified_solved)
    with pytest.raises(ValidationError):
        assignment.assign(issue, _user(1), actor_id=9, now=NOW)
    assert issue.assigned_to_id is None


def _persist_issue(db, zone="Zone A", status=IssueStatus.pending, assignee_id=None):
    issue = Issue(title="Streetlight out", description="Dark corner since Monday night", zone=zone,
                  category=IssueCategory.streetlight, lat=1.0, lng=2.0, address="1 Elm St",
                  status=status, assigned_to_id=assignee_id, is_archived=False)
    db.add(issue)
    db.flush()
    return issue


def test_auto_assign_prefers_admin_with_fewest_open_issues(db, make_user):
    busy = make_user(UserRole.low_admin, zones=["Zone A"])
    idle = make_user(UserRole.low_admin, zones=["Zone A"])
    make_user(UserRole.low_admin, zones=["Zone B"])
    _persist_issue(db, status=IssueStatus.in_progress, assignee_id=busy.id)
    # resolved work does not count towards the load
    _persist_issue(db, status=IssueStatus.verified_solved, assignee_id=idle.id)

    issue = _persist_issue(db)
    workflow.record_initial_status(issue, None, NOW)
    chosen = assignment.auto_assign(db, issue, NOW)

    assert chosen.id == idle.id
    assert issue.status == IssueStatus.in_progress
    assert issue.assigned_at == NOW
    assert issue.history[-1].reason == "Auto-assigned"


def test_auto_assign_single_idle_admin(db, make_user):
    admin = make_user(UserRole.low_admin, zones=["Zone A"])
    issue = _persist_issue(db)
    assert assignment.auto_assign(db, issue, NOW).id == admin.id
    assert issue.status == IssueStatus.in_progress


def test_auto_assign_without_candidates_is_a_noop(db, make_user):
    make_user(UserRole.low_admin, zones=["Zone B"])
    make_user(UserRole.low_admin, zones=["Zone A"], is_active=False)
    make_user(UserRole.high_admin, zones=["Zone A"])
    issue = _persist_issue(db)
    assert assignment.auto_assign(db, issue, NOW) is None
    assert issue.status == IssueStatus.pending
    assert issue.assigned_to_id is None


def test_open_issue_counts(db, make_user):
    a = make_user(UserRole.low_admin, zones=["Zone A"])
    _persist_issue(db, status=IssueStatus.in_progress, assignee_id=a.id)
    _persist_issue(db, status=IssueStatus.escalated, assignee_id=a.id)
    _persist_issue(db, status=IssueStatus.verified_solved, assignee_id=a.id)
    assert assignment.open_issue_counts(db, [a.id]) == {a.id: 2}
    assert assignment.open_issue_counts(db, []) == {}
