import itertools

import pytest

from app.core.errors import AccessDenied
from app.models.comment import IssueComment
from app.models.issue import Issue, IssueStatus
from app.models.user import User, UserRole
from app.services import policy
from app.services.actors import CitizenActor, HighAdminActor, LowAdminActor, actor_from_user
from app.services.policy import Action

REPORTER = 10
ASSIGNEE = 20
MUTATIONS = [Action.assign, Action.update_status, Action.comment, Action.add_work_proof]


def _issue(status=IssueStatus.in_progress, zone="Zone A", assignee=ASSIGNEE, department="roads"):
    return Issue(title="Overflowing bin", zone=zone, status=status, reported_by_id=REPORTER,
                 assigned_to_id=assignee, assigned_department=department)


@pytest.mark.parametrize("status", list(IssueStatus))
@pytest.mark.parametrize("citizen_id", [REPORTER, 99])
def test_citizen_can_never_assign(status, citizen_id):
    assert not policy.is_allowed(CitizenActor(citizen_id), _issue(status), Action.assign)


def test_reporter_may_view_and_comment_others_may_not():
    issue = _issue()
    assert policy.can_view(CitizenActor(REPORTER), issue)
    assert policy.can_comment(CitizenActor(REPORTER), issue)
    assert not policy.can_view(CitizenActor(99), issue)
    assert not policy.can_comment(CitizenActor(99), issue)


@pytest.mark.parametrize("requested", list(IssueStatus))
def test_reporter_may_only_request_verification_or_reopen(requested):
    allowed = policy.can_update_status(CitizenActor(REPORTER), _issue(), requested)
    assert allowed is (requested in (IssueStatus.pending_verification, IssueStatus.reopened))


def test_reporter_cannot_add_work_proof():
    assert not policy.can_add_work_proof(CitizenActor(REPORTER), _issue())


def test_high_admin_may_do_everything():
    actor = HighAdminActor(1)
    issue = _issue(zone="Elsewhere", assignee=None, department=None)
    for action in Action:
        assert policy.is_allowed(actor, issue, action, IssueStatus.escalated)


@pytest.mark.parametrize("action", MUTATIONS)
def test_low_admin_outside_zone_and_not_assignee_is_denied(action):
    actor = LowAdminActor(30, zones=frozenset({"Zone B"}), department="parks")
    assert not policy.is_allowed(actor, _issue(), action, IssueStatus.pending_verification)


def test_low_admin_in_zone_may_manage():
    actor = LowAdminActor(30, zones=frozenset({"Zone A"}))
    issue = _issue()
    assert policy.can_assign(actor, issue)
    assert policy.can_update_status(actor, issue, IssueStatus.escalated)
    assert policy.can_comment(actor, issue)
    assert policy.can_view(actor, issue)


def test_only_the_assignee_adds_work_proof():
    in_zone = LowAdminActor(30, zones=frozenset({"Zone A"}))
    assignee = LowAdminActor(ASSIGNEE, zones=frozenset())
    assert not policy.can_add_work_proof(in_zone, _issue())
    assert policy.can_add_work_proof(assignee, _issue())


def test_assignee_outside_zone_keeps_access():
    actor = LowAdminActor(ASSIGNEE, zones=frozenset({"Zone Z"}))
    issue = _issue()
    for action in MUTATIONS:
        assert policy.is_allowed(actor, issue, action, IssueStatus.pending_verification)


def test_department_match_grants_assign_and_view_only():
    actor = LowAdminActor(30, zones=frozenset(), department="roads")
    issue = _issue()
    assert policy.can_assign(actor, issue)
    assert policy.can_view(actor, issue)
    assert not policy.can_update_status(actor, issue, IssueStatus.escalated)
    assert not policy.can_comment(actor, issue)


def test_unassigned_issue_never_matches_an_assignee_check():
    actor = LowAdminActor(30, zones=frozenset())
    assert not policy.can_add_work_proof(actor, _issue(assignee=None))


def test_ensure_allowed_raises_generic_denial():
    with pytest.raises(AccessDenied) as exc:
        policy.ensure_allowed(CitizenActor(99), _issue(), Action.view)
    assert exc.value.detail == "Access denied"
    assert exc.value.status_code == 403


def test_citizen_comments_are_never_internal():
    assert policy.comment_is_internal(CitizenActor(REPORTER), True) is False
    assert policy.comment_is_internal(LowAdminActor(30), True) is True
    assert policy.comment_is_internal(HighAdminActor(1), False) is False


def test_citizens_do_not_see_internal_comments():
    comments = [IssueComment(text="public", is_internal=False), IssueComment(text="staff only", is_internal=True)]
    assert [c.text for c in policy.visible_comments(CitizenActor(REPORTER), comments)] == ["public"]
    assert len(policy.visible_comments(HighAdminActor(1), comments)) == 2


@pytest.mark.parametrize("role", list(UserRole))
def test_actor_from_user_picks_variant(role):
    user = User(id=5, email="a@newcivic.org", name="A", role=role, department="roads")
    user.set_zones(["Zone A", "Zone A ", "Zone B"])
    actor = actor_from_user(user)
    assert actor.role == role
    assert actor.id == 5
    if role == UserRole.low_admin:
        assert actor.zones == frozenset({"Zone A", "Zone B"})
        assert actor.department == "roads"
    if role == UserRole.citizen:
        assert not hasattr(actor, "zones") and not hasattr(actor, "department")


def test_policy_is_pure():
    issue = _issue()
    actor = LowAdminActor(30, zones=frozenset({"Zone A"}))
    before = (issue.status, issue.assigned_to_id, issue.zone)
    for action, status in itertools.product(Action, IssueStatus):
        policy.is_allowed(actor, issue, action, status)
    assert (issue.status, issue.assigned_to_id, issue.zone) == before
