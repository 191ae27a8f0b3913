# File: app/routers/issues.py
import logging
import math
from datetime import datetime
from typing import List, Optional

import pydantic
from fastapi import APIRouter, BackgroundTasks, Depends, File, Form, Query, Request, UploadFile
from sqlalchemy import or_
from sqlalchemy.orm import Session

from app.core.clock import utcnow
from app.core.config import settings
from app.core.errors import NotFound, ValidationError
from app.core.ratelimit import limiter
from app.core.security import get_current_actor, get_current_user, require_high_admin
from app.db.session import get_db
from app.models.app_settings import AppSettings
from app.models.attachment import AttachmentKind, IssueAttachment
from app.models.comment import IssueComment
from app.models.issue import Issue, IssueCategory, IssuePriority, IssueStatus
from app.models.user import User
from app.schemas.issue import (
    ArchiveIn,
    AssignIn,
    CommentIn,
    CommentOut,
    IssueCreate,
    IssueDetailOut,
    IssueOut,
    PaginatedIssuesOut,
    StatusChangeOut,
    StatusIn,
    WorkProofOut,
)
from app.services import assignment, escalation, notifications, policy, workflow
from app.services.actors import Actor, CitizenActor, actor_from_user
from app.services.dispatcher import CommentAdded, IssueAssigned, IssueCreated, IssueFacts, StatusChanged
from app.services.events import EventName, hub
from app.services.storage import ALLOWED_IMAGES, MAX_BYTES, MAX_FILES, make_object_key, upload_file

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/issues", tags=["issues"])

SORTABLE = {
    "created_at": Issue.created_at,
    "updated_at": Issue.updated_at,
    "priority": Issue.priority,
    "status": Issue.status,
}


# ---------------------------------------------------------------------------
# helpers
# ---------------------------------------------------------------------------

def load_issue(db: Session, issue_id: int) -> Issue:
    issue = db.get(Issue, issue_id)
    if not issue:
        raise NotFound("Issue")
    return issue


def users_by_id(db: Session, ids) -> dict[int, User]:
    ids = {i for i in ids if i}
    if not ids:
        return {}
    return {u.id: u for u in db.query(User).filter(User.id.in_(ids))}


def _user_lite(user: Optional[User], viewer: Optional[Actor]) -> Optional[dict]:
    if not user:
        return None
    # staff see everybody's e-mail, citizens only their own
    show_email = viewer is not None and (not isinstance(viewer, CitizenActor) or viewer.id == user.id)
    return {
        "id": user.id,
        "name": user.name,
        "email": user.email if show_email else None,
        "role": user.role.value,
    }


def issue_out(issue: Issue, users: dict[int, User], viewer: Optional[Actor], now: datetime,
              escalate_days: int) -> dict:
    return {
        "id": issue.id,
        "title": issue.title,
        "description": issue.description,
        "category": issue.category.value,
        "priority": issue.priority.value,
        "status": issue.status.value,
        "lat": issue.lat,
        "lng": issue.lng,
        "address": issue.address,
        "zone": issue.zone,
        "reported_by": _user_lite(users.get(issue.reported_by_id), viewer),
        "assigned_to": _user_lite(users.get(issue.assigned_to_id), viewer),
        "assigned_department": issue.assigned_department,
        "assigned_at": issue.assigned_at,
        "due_date": issue.due_date,
        "resolved_at": issue.resolved_at,
        "verified_at": issue.verified_at,
        "escalated_at": issue.escalated_at,
        "escalation_reason": issue.escalation_reason,
        "tags": issue.tags or [],
        "is_archived": issue.is_archived,
        "needs_attention": escalation.needs_attention(issue, now, escalate_days),
        "created_at": issue.created_at,
        "updated_at": issue.updated_at,
        "photos": issue.photos,
    }


def render_issue(db: Session, issue: Issue, viewer: Optional[Actor]) -> IssueOut:
    users = users_by_id(db, [issue.reported_by_id, issue.assigned_to_id])
    escalate_days = AppSettings.load(db, settings.auto_escalate_days).auto_escalate_days
    return IssueOut.model_validate(issue_out(issue, users, viewer, utcnow(), escalate_days))


def _comment_out(comment, users: dict[int, User], viewer: Actor) -> CommentOut:
    return CommentOut(
        id=comment.id,
        text=comment.text,
        author=_user_lite(users.get(comment.author_id), viewer),
        is_internal=comment.is_internal,
        created_at=comment.created_at,
    )


def _history_out(issue: Issue) -> list[StatusChangeOut]:
    return [
        StatusChangeOut(status=h.status, changed_by_id=h.changed_by_id, changed_at=h.changed_at, reason=h.reason)
        for h in issue.history
    ]


def _work_proof_out(issue: Issue) -> list[WorkProofOut]:
    return [
        WorkProofOut(id=a.id, url=a.url, description=a.description, uploaded_by_id=a.uploaded_by_id,
                     uploaded_at=a.uploaded_at)
        for a in issue.work_proof
    ]


def publish_issue(name: EventName, issue: Issue) -> None:
    hub.publish(name, {
        "id": issue.id,
        "status": issue.status.value,
        "zone": issue.zone,
        "reported_by_id": issue.reported_by_id,
        "assigned_to_id": issue.assigned_to_id,
        "assigned_department": issue.assigned_department,
        "updated_at": issue.updated_at.isoformat() if issue.updated_at else None,
    })


def _read_uploads(files: Optional[List[UploadFile]]) -> list[tuple[UploadFile, bytes]]:
    """Validate every upload before anything is written."""
    files = [f for f in (files or []) if f is not None and f.filename]
    if len(files) > MAX_FILES:
        raise ValidationError(f"Max {MAX_FILES} images")
    out = []
    for f in files:
        if f.content_type not in ALLOWED_IMAGES:
            raise ValidationError("Unsupported image type")
        data = f.file.read()
        if len(data) > MAX_BYTES:
            raise ValidationError("Image exceeds 2MB")
        out.append((f, data))
    return out


def _store_uploads(issue: Issue, uploads, kind: AttachmentKind, uploader_id: int,
                   description: Optional[str], now: datetime) -> list[IssueAttachment]:
    folder = "photos" if kind == AttachmentKind.photo else "work-proof"
    stored = []
    for f, data in uploads:
        key = make_object_key(issue.id, f.filename or "upload.jpg", folder)
        url = upload_file(data, f.content_type, key)
        att = IssueAttachment(
            kind=kind,
            url=url,
            content_type=f.content_type,
            size=len(data),
            description=description or f.filename,
            uploaded_by_id=uploader_id,
            uploaded_at=now,
        )
        issue.attachments.append(att)
        stored.append(att)
    return stored


def _parse_tags(raw: Optional[str]) -> list[str]:
    if not raw:
        return []
    return [t.strip() for t in raw.split(",") if t.strip()]


# ---------------------------------------------------------------------------
# create / list / read
# ---------------------------------------------------------------------------

@router.post("", response_model=IssueOut, status_code=201)
@limiter.limit("10/minute")
def create_issue(
    request: Request,
    background_tasks: BackgroundTasks,
    title: str = Form(...),
    description: str = Form(...),
    category: str = Form(...),
    lat: float = Form(...),
    lng: float = Form(...),
    address: str = Form(...),
    zone: str = Form(...),
    priority: str = Form("medium"),
    tags: Optional[str] = Form(None),
    files: List[UploadFile] | None = File(default=None),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    try:
        body = IssueCreate(
            title=title, description=description, category=category, priority=priority,
            lat=lat, lng=lng, address=address, zone=zone, tags=_parse_tags(tags),
        )
    except pydantic.ValidationError as e:
        err = e.errors()[0]
        field = ".".join(str(p) for p in err.get("loc", ()))
        raise ValidationError(f"{field}: {err.get('msg')}" if field else err.get("msg"))
    uploads = _read_uploads(files)

    now = utcnow()
    issue = Issue(
        title=body.title,
        description=body.description,
        category=IssueCategory(body.category),
        priority=IssuePriority(body.priority),
        lat=body.lat,
        lng=body.lng,
        address=body.address,
        zone=body.zone,
        tags=body.tags,
        reported_by_id=user.id,
        is_archived=False,
        created_at=now,
    )
    workflow.record_initial_status(issue, user.id, now)
    db.add(issue)
    db.flush()

    _store_uploads(issue, uploads, AttachmentKind.photo, user.id, None, now)

    events = []
    app_settings = AppSettings.load(db, settings.auto_escalate_days)
    if app_settings.auto_assign_issues:
        assignee = assignment.auto_assign(db, issue, now)
        if assignee is not None:
            facts = IssueFacts.of(issue)
            events += [IssueAssigned(facts, auto=True), StatusChanged(facts, IssueStatus.in_progress)]
    events.insert(0, IssueCreated(IssueFacts.of(issue)))

    rows = notifications.dispatch(db, events)
    db.commit()
    db.refresh(issue)

    notifications.announce(rows, background_tasks)
    publish_issue(EventName.issue_created, issue)
    return render_issue(db, issue, actor_from_user(user))


@router.get("", response_model=PaginatedIssuesOut)
@limiter.limit("60/minute")
def list_issues(
    request: Request,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
    status: Optional[IssueStatus] = Query(default=None),
    category: Optional[IssueCategory] = Query(default=None),
    priority: Optional[IssuePriority] = Query(default=None),
    zone: Optional[str] = Query(default=None),
    search: Optional[str] = Query(default=None),
    needs_attention: int = Query(default=0, ge=0, le=1),
    include_archived: int = Query(default=0, ge=0, le=1),
    sort_by: str = Query(default="created_at"),
    sort_order: str = Query(default="desc", pattern="^(asc|desc)$"),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
):
    if sort_by not in SORTABLE:
        raise ValidationError(f"Cannot sort by {sort_by}")

    q = db.query(Issue).filter(policy.issue_scope_filter(actor))
    if not (include_archived and not isinstance(actor, CitizenActor)):
        q = q.filter(Issue.is_archived.is_(False))
    if status:
        q = q.filter(Issue.status == status)
    if category:
        q = q.filter(Issue.category == category)
    if priority:
        q = q.filter(Issue.priority == priority)
    if zone:
        q = q.filter(Issue.zone == zone)
    if search:
        term = f"%{search}%"
        clauses = [Issue.title.ilike(term), Issue.description.ilike(term), Issue.address.ilike(term)]
        if search.isdigit():
            clauses.append(Issue.id == int(search))
        q = q.filter(or_(*clauses))

    now = utcnow()
    escalate_days = AppSettings.load(db, settings.auto_escalate_days).auto_escalate_days
    if needs_attention:
        cutoff_ids = [i.id for i in escalation.find_overdue(db, now, escalate_days)]
        q = q.filter(or_(Issue.status == IssueStatus.escalated, Issue.id.in_(cutoff_ids)))

    column = SORTABLE[sort_by]
    order = column.asc() if sort_order == "asc" else column.desc()
    total = q.count()
    issues = q.order_by(order, Issue.id.desc()).offset((page - 1) * limit).limit(limit).all()

    users = users_by_id(db, [u for i in issues for u in (i.reported_by_id, i.assigned_to_id)])
    items = [IssueOut.model_validate(issue_out(i, users, actor, now, escalate_days)) for i in issues]
    return {
        "items": items,
        "total": total,
        "page": page,
        "limit": limit,
        "total_pages": math.ceil(total / limit) if total else 0,
    }


@router.get("/{issue_id}", response_model=IssueDetailOut)
def get_issue(
    issue_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    issue = load_issue(db, issue_id)
    policy.ensure_allowed(actor, issue, policy.Action.view)

    comments = policy.visible_comments(actor, issue.comments)
    users = users_by_id(db, [issue.reported_by_id, issue.assigned_to_id] + [c.author_id for c in comments])
    escalate_days = AppSettings.load(db, settings.auto_escalate_days).auto_escalate_days
    out = issue_out(issue, users, actor, utcnow(), escalate_days)
    out["status_history"] = _history_out(issue)
    out["comments"] = [_comment_out(c, users, actor) for c in comments]
    out["work_proof"] = _work_proof_out(issue)
    return IssueDetailOut.model_validate(out)


@router.get("/{issue_id}/history", response_model=list[StatusChangeOut])
def get_history(
    issue_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    issue = load_issue(db, issue_id)
    policy.ensure_allowed(actor, issue, policy.Action.view)
    return _history_out(issue)


# ---------------------------------------------------------------------------
# workflow mutations
# ---------------------------------------------------------------------------

@router.put("/{issue_id}/assign", response_model=IssueOut)
def assign_issue(
    issue_id: int,
    body: AssignIn,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    actor = actor_from_user(user)
    issue = load_issue(db, issue_id)
    policy.ensure_allowed(actor, issue, policy.Action.assign)

    assignee = assignment.ensure_assignable(db.get(User, body.assigned_to_id))
    before = issue.status
    previous = assignment.assign(
        issue, assignee, user.id,
        department=body.assigned_department,
        due_date=body.due_date,
    )
    facts = IssueFacts.of(issue)
    events = [IssueAssigned(facts, previous_assignee_id=previous)]
    if issue.status != before:
        events.append(StatusChanged(facts, issue.status))

    rows = notifications.dispatch(db, events)
    db.commit()
    db.refresh(issue)

    notifications.announce(rows, background_tasks)
    publish_issue(EventName.issue_updated, issue)
    return render_issue(db, issue, actor)


@router.put("/{issue_id}/status", response_model=IssueOut)
def update_status(
    issue_id: int,
    body: StatusIn,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    actor = actor_from_user(user)
    issue = load_issue(db, issue_id)
    requested = IssueStatus(body.status)
    policy.ensure_allowed(actor, issue, policy.Action.update_status, requested)

    workflow.apply_transition(issue, requested, user.id, reason=body.reason, role=user.role)
    if requested == IssueStatus.escalated:
        issue.escalation_reason = body.reason

    rows = notifications.dispatch(db, [StatusChanged(IssueFacts.of(issue), requested, body.reason)])
    db.commit()
    db.refresh(issue)

    notifications.announce(rows, background_tasks)
    publish_issue(EventName.issue_updated, issue)
    return render_issue(db, issue, actor)


@router.put("/{issue_id}/archive", response_model=IssueOut)
def archive_issue(
    issue_id: int,
    body: ArchiveIn,
    db: Session = Depends(get_db),
    user: User = Depends(require_high_admin),
):
    issue = load_issue(db, issue_id)
    issue.is_archived = body.archived
    issue.updated_at = utcnow()
    db.commit()
    db.refresh(issue)
    publish_issue(EventName.issue_updated, issue)
    return render_issue(db, issue, actor_from_user(user))


# ---------------------------------------------------------------------------
# comments / work proof
# ---------------------------------------------------------------------------

@router.get("/{issue_id}/comments", response_model=list[CommentOut])
def list_comments(
    issue_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    issue = load_issue(db, issue_id)
    policy.ensure_allowed(actor, issue, policy.Action.view)
    comments = policy.visible_comments(actor, issue.comments)
    users = users_by_id(db, [c.author_id for c in comments])
    return [_comment_out(c, users, actor) for c in comments]


@router.post("/{issue_id}/comments", response_model=CommentOut, status_code=201)
def add_comment(
    issue_id: int,
    body: CommentIn,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    actor = actor_from_user(user)
    issue = load_issue(db, issue_id)
    policy.ensure_allowed(actor, issue, policy.Action.comment)
    if not body.text:
        raise ValidationError("Comment text is required")

    comment = IssueComment(
        author_id=user.id,
        text=body.text,
        is_internal=policy.comment_is_internal(actor, body.is_internal),
        created_at=utcnow(),
    )
    issue.comments.append(comment)
    rows = notifications.dispatch(db, [CommentAdded(IssueFacts.of(issue), author_id=user.id)])
    db.commit()
    db.refresh(comment)

    notifications.announce(rows, background_tasks)
    publish_issue(EventName.issue_updated, issue)
    return _comment_out(comment, {user.id: user}, actor)


@router.post("/{issue_id}/work-proof", response_model=list[WorkProofOut], status_code=201)
def add_work_proof(
    issue_id: int,
    description: Optional[str] = Form(None),
    files: List[UploadFile] | None = File(default=None),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    actor = actor_from_user(user)
    issue = load_issue(db, issue_id)
    policy.ensure_allowed(actor, issue, policy.Action.add_work_proof)

    uploads = _read_uploads(files)
    if not uploads:
        raise ValidationError("At least one file is required")
    now = utcnow()
    stored = _store_uploads(issue, uploads, AttachmentKind.work_proof, user.id, description, now)
    issue.updated_at = now
    db.commit()
    for att in stored:
        db.refresh(att)

    publish_issue(EventName.issue_updated, issue)
    return [
        WorkProofOut(id=a.id, url=a.url, description=a.description, uploaded_by_id=a.uploaded_by_id,
                     uploaded_at=a.uploaded_at)
        for a in stored
    ]
