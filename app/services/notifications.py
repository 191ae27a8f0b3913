# app/services/notifications.py
"""
Persistence and delivery of dispatcher output.

The dispatcher decides who hears about what; this module writes the rows,
publishes them to live listeners once the transaction is committed, and
pushes/e-mails them from a background task with its own session.
"""
import logging
from typing import Iterable, Optional, Sequence

from fastapi import BackgroundTasks
from sqlalchemy.orm import Session

from app.core.config import settings
from app.db.session import SessionLocal
from app.models.app_settings import AppSettings
from app.models.notification import Notification
from app.models.push import PushSubscription
from app.models.user import User
from app.services.dispatcher import (
    NotificationDraft,
    StaffDirectory,
    WorkflowEvent,
    load_staff_directory,
    notifications_for,
)
from app.services.events import EventName, hub

logger = logging.getLogger(__name__)


def record(db: Session, drafts: Iterable[NotificationDraft]) -> list[Notification]:
    rows = [
        Notification(
            recipient_id=d.recipient_id,
            issue_id=d.issue_id,
            type=d.type,
            title=d.title,
            message=d.message,
            priority=d.priority,
            action_url=d.action_url,
            is_read=False,
        )
        for d in drafts
    ]
    db.add_all(rows)
    return rows


def dispatch(db: Session, events: Sequence[WorkflowEvent], staff: Optional[StaffDirectory] = None) -> list[Notification]:
    """Turn events into pending Notification rows on ``db``. The caller commits."""
    if not events:
        return []
    staff = staff or load_staff_directory(db)
    rows: list[Notification] = []
    for event in events:
        rows.extend(record(db, notifications_for(event, staff)))
    return rows


def serialize(n: Notification) -> dict:
    return {
        "id": n.id,
        "recipient_id": n.recipient_id,
        "issue_id": n.issue_id,
        "type": n.type.value,
        "title": n.title,
        "message": n.message,
        "priority": n.priority.value,
        "action_url": n.action_url,
        "is_read": n.is_read,
        "read_at": n.read_at.isoformat() if n.read_at else None,
        "created_at": n.created_at.isoformat() if n.created_at else None,
    }


def announce(rows: Sequence[Notification], background_tasks: Optional[BackgroundTasks] = None) -> None:
    """Publish committed rows to live listeners and queue push/e-mail delivery."""
    if not rows:
        return
    for n in rows:
        hub.publish(EventName.notification_created, serialize(n), recipient_id=n.recipient_id)
    if background_tasks is not None:
        background_tasks.add_task(deliver_notifications_safe, [n.id for n in rows])


def _deliver_push(db: Session, n: Notification) -> None:
    from app.services.notify_push import send_push

    subs = db.query(PushSubscription).filter(PushSubscription.user_id == n.recipient_id).all()
    for s in subs:
        ok = send_push(
            {"endpoint": s.endpoint, "keys": {"p256dh": s.p256dh, "auth": s.auth}},
            {"title": n.title, "body": n.message, "url": n.action_url},
        )
        if not ok:
            db.delete(s)


def _deliver_email(db: Session, n: Notification) -> None:
    from app.services.notify_email import send_notification_email

    user = db.get(User, n.recipient_id)
    if user and user.email and user.is_active:
        send_notification_email(user.email, n.title, n.message, n.priority.value, n.action_url)


def deliver_notifications_safe(notification_ids: list[int]) -> None:
    db = SessionLocal()
    try:
        app_settings = AppSettings.load(db, settings.auto_escalate_days)
        rows = db.query(Notification).filter(Notification.id.in_(notification_ids)).all()
        for n in rows:
            if app_settings.push_notifications_enabled:
                try:
                    _deliver_push(db, n)
                except Exception:
                    logger.error("push delivery failed for notification %s", n.id, exc_info=True)
            if app_settings.email_notifications_enabled:
                try:
                    _deliver_email(db, n)
                except Exception:
                    logger.error("email delivery failed for notification %s", n.id, exc_info=True)
        db.commit()
    except Exception:
        logger.error("Error in background notification delivery", exc_info=True)
        db.rollback()
    finally:
        db.close()
