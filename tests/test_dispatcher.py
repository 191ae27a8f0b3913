import pytest

from app.models.issue import IssuePriority, IssueStatus
from app.models.notification import NotificationPriority as P, NotificationType as T
from app.services.dispatcher import (
    CommentAdded,
    IssueAssigned,
    IssueCreated,
    IssueFacts,
    StaffDirectory,
    StatusChanged,
    notifications_for,
)

REPORTER, ASSIGNEE, OTHER_ADMIN = 1, 2, 3
HIGH_1, HIGH_2 = 8, 9
STAFF = StaffDirectory(admin_ids=(ASSIGNEE, OTHER_ADMIN, HIGH_1, HIGH_2), high_admin_ids=(HIGH_1, HIGH_2))


def facts(priority=IssuePriority.medium, assignee=ASSIGNEE, reporter=REPORTER):
    return IssueFacts(id=42, title="Water main leak", category="water_leak", zone="Zone A",
                      priority=priority, reporter_id=reporter, assignee_id=assignee)


def by_recipient(drafts):
    return {d.recipient_id: d for d in drafts}


def test_created_notifies_every_admin():
    drafts = notifications_for(IssueCreated(facts()), STAFF)
    assert [d.recipient_id for d in drafts] == list(STAFF.admin_ids)
    assert {d.type for d in drafts} == {T.issue_created}
    assert drafts[0].message == "A new water leak issue has been reported in Zone A"
    assert all(d.action_url == "/issues/42" and d.issue_id == 42 for d in drafts)


def test_escalation_reaches_each_high_admin_and_the_assignee_at_high_priority():
    drafts = notifications_for(StatusChanged(facts(), IssueStatus.escalated), STAFF)
    assert sorted(d.recipient_id for d in drafts) == sorted([HIGH_1, HIGH_2, ASSIGNEE])
    assert {d.type for d in drafts} == {T.issue_escalated}
    assert {d.priority for d in drafts} == {P.high}


def test_escalation_reason_is_carried_in_message():
    drafts = notifications_for(StatusChanged(facts(), IssueStatus.escalated, "No crew available"), STAFF)
    assert drafts[0].message == 'Issue "Water main leak" has been escalated: No crew available'


def test_escalation_of_issue_assigned_to_a_high_admin_is_not_duplicated():
    drafts = notifications_for(StatusChanged(facts(assignee=HIGH_1), IssueStatus.escalated), STAFF)
    assert sorted(d.recipient_id for d in drafts) == [HIGH_1, HIGH_2]


def test_reassignment_produces_distinct_records_for_both_admins():
    drafts = notifications_for(IssueAssigned(facts(assignee=OTHER_ADMIN), previous_assignee_id=ASSIGNEE), STAFF)
    got = by_recipient(drafts)
    assert set(got) == {OTHER_ADMIN, ASSIGNEE}
    assert got[OTHER_ADMIN].type == T.issue_assigned
    assert got[OTHER_ADMIN].title == "Issue Reassigned to You"
    assert got[ASSIGNEE].type == T.issue_updated
    assert got[ASSIGNEE].priority == P.low


def test_first_assignment_only_notifies_assignee():
    drafts = notifications_for(IssueAssigned(facts()), STAFF)
    assert [(d.recipient_id, d.type, d.title) for d in drafts] == [(ASSIGNEE, T.issue_assigned, "Issue Assigned")]


def test_auto_assignment_title():
    drafts = notifications_for(IssueAssigned(facts(), auto=True), STAFF)
    assert drafts[0].title == "Issue Auto-Assigned"


@pytest.mark.parametrize("status,expected", [
    (IssueStatus.in_progress, {REPORTER: T.issue_updated}),
    (IssueStatus.pending_verification, {REPORTER: T.verification_required, HIGH_1: T.verification_required,
                                        HIGH_2: T.verification_required}),
    (IssueStatus.verified_solved, {REPORTER: T.issue_resolved}),
    (IssueStatus.reopened, {ASSIGNEE: T.issue_reopened}),
    (IssueStatus.pending, {}),
])
def test_status_change_table(status, expected):
    drafts = notifications_for(StatusChanged(facts(), status), STAFF)
    assert {d.recipient_id: d.type for d in drafts} == expected


def test_verification_request_priorities():
    got = by_recipient(notifications_for(StatusChanged(facts(), IssueStatus.pending_verification), STAFF))
    assert got[REPORTER].priority == P.medium
    assert got[HIGH_1].priority == P.high


def test_urgent_issue_forces_high_priority_everywhere():
    urgent = facts(priority=IssuePriority.urgent)
    events = [
        IssueCreated(urgent),
        IssueAssigned(urgent, previous_assignee_id=OTHER_ADMIN),
        StatusChanged(urgent, IssueStatus.in_progress),
        CommentAdded(urgent, author_id=REPORTER),
    ]
    for event in events:
        drafts = notifications_for(event, STAFF)
        assert drafts
        assert {d.priority for d in drafts} == {P.high}


def test_comment_notifies_reporter_and_assignee():
    drafts = notifications_for(CommentAdded(facts(), author_id=REPORTER), STAFF)
    assert [d.recipient_id for d in drafts] == [REPORTER, ASSIGNEE]
    assert {d.type for d in drafts} == {T.comment_added}


def test_missing_parties_are_skipped():
    drafts = notifications_for(CommentAdded(facts(assignee=None, reporter=None), author_id=5), STAFF)
    assert drafts == []


def test_dispatch_is_deterministic():
    event = StatusChanged(facts(), IssueStatus.pending_verification)
    assert notifications_for(event, STAFF) == notifications_for(event, STAFF)


def test_unknown_event_type():
    with pytest.raises(TypeError):
        notifications_for(object(), STAFF)
