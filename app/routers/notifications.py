# File: app/routers/notifications.py
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy import func
from sqlalchemy.orm import Session

from app.core.clock import utcnow
from app.core.errors import NotFound
from app.core.security import get_current_user
from app.db.session import get_db
from app.models.notification import Notification, NotificationType
from app.models.user import User
from app.schemas.notification import NotificationOut, NotificationPage

router = APIRouter(prefix="/notifications", tags=["notifications"])


def _own(db: Session, user: User, notification_id: int) -> Notification:
    n = (
        db.query(Notification)
        .filter(Notification.id == notification_id, Notification.recipient_id == user.id)
        .first()
    )
    if not n:
        raise NotFound("Notification")
    return n


def _out(n: Notification) -> NotificationOut:
    return NotificationOut(
        id=n.id,
        issue_id=n.issue_id,
        type=n.type.value,
        title=n.title,
        message=n.message,
        priority=n.priority.value,
        action_url=n.action_url,
        is_read=n.is_read,
        read_at=n.read_at,
        created_at=n.created_at,
    )


@router.get("", response_model=NotificationPage)
def list_notifications(
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    unread_only: int = Query(default=0, ge=0, le=1),
    type: Optional[NotificationType] = Query(default=None),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
):
    q = db.query(Notification).filter(Notification.recipient_id == user.id)
    if unread_only:
        q = q.filter(Notification.is_read.is_(False))
    if type:
        q = q.filter(Notification.type == type)

    total = q.count()
    rows = (
        q.order_by(Notification.created_at.desc(), Notification.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    unread = (
        db.query(func.count(Notification.id))
        .filter(Notification.recipient_id == user.id, Notification.is_read.is_(False))
        .scalar()
    ) or 0
    return {"items": [_out(n) for n in rows], "total": total, "page": page, "limit": limit, "unread_count": unread}


@router.put("/read-all")
def mark_all_read(db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    now = utcnow()
    updated = (
        db.query(Notification)
        .filter(Notification.recipient_id == user.id, Notification.is_read.is_(False))
        .update({Notification.is_read: True, Notification.read_at: now}, synchronize_session=False)
    )
    db.commit()
    return {"ok": True, "updated": updated}


@router.put("/{notification_id}/read", response_model=NotificationOut)
def mark_read(notification_id: int, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    n = _own(db, user, notification_id)
    n.mark_read(utcnow())
    db.commit()
    db.refresh(n)
    return _out(n)


@router.delete("/{notification_id}")
def delete_notification(notification_id: int, db: Session = Depends(get_db),
                        user: User = Depends(get_current_user)):
    db.delete(_own(db, user, notification_id))
    db.commit()
    return {"ok": True}


@router.delete("")
def clear_notifications(db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    deleted = (
        db.query(Notification)
        .filter(Notification.recipient_id == user.id)
        .delete(synchronize_session=False)
    )
    db.commit()
    return {"ok": True, "deleted": deleted}
