import pytest

from app.core.config import settings
from app.models.app_settings import AppSettings
from app.models.notification import Notification, NotificationPriority, NotificationType
from app.models.push import PushSubscription
from app.models.user import UserRole
from app.services import notifications, notify_email, notify_push


@pytest.fixture
def outbox(monkeypatch):
    sent = []
    monkeypatch.setattr(settings, "email_provider", "smtp")
    monkeypatch.setitem(notify_email.PROVIDERS, "smtp", lambda to, subject, html: sent.append((to, subject, html)))
    return sent


def _notification(db, user, priority=NotificationPriority.high):
    n = Notification(recipient_id=user.id, type=NotificationType.issue_escalated, title="Issue Escalated",
                     message='Issue "Broken <b>light</b>" has been escalated', priority=priority,
                     action_url="/issues/7", is_read=False)
    db.add(n)
    db.commit()
    return n


def test_email_escapes_content_and_links_to_frontend(monkeypatch):
    monkeypatch.setattr(settings, "frontend_base_url", "city.example.org/")
    html = notify_email.render_notification_email("Issue <Escalated>", "a & b", "high", "/issues/7")
    assert "Issue &lt;Escalated&gt;" in html
    assert "a &amp; b" in html
    assert 'href="https://city.example.org/issues/7"' in html
    assert notify_email.PRIORITY_COLOURS["high"] in html


def test_unverified_domain_redirects_mail(monkeypatch, outbox):
    monkeypatch.setattr(settings, "email_domain_verified", False)
    monkeypatch.setattr(settings, "email_redirect_to", "qa@newcivic.org")
    notify_email.send_notification_email("resident@newcivic.org", "Issue Resolved", "Done")
    to, subject, html = outbox[0]
    assert to == "qa@newcivic.org"
    assert subject == "Issue Resolved"
    assert "resident@newcivic.org" in html


def test_background_delivery_sends_mail_and_prunes_dead_push(monkeypatch, db, make_user, outbox):
    monkeypatch.setattr(settings, "email_domain_verified", True)
    admin = make_user(UserRole.high_admin)
    db.add(PushSubscription(user_id=admin.id, endpoint="https://push.example.net/gone", p256dh="k", auth="a"))
    n = _notification(db, admin)
    pushed = []

    def fake_push(subscription, payload):
        pushed.append((subscription["endpoint"], payload))
        return False

    monkeypatch.setattr(notify_push, "send_push", fake_push)
    notifications.deliver_notifications_safe([n.id])

    assert pushed == [("https://push.example.net/gone",
                       {"title": "Issue Escalated", "body": n.message, "url": "/issues/7"})]
    assert outbox[0][0] == admin.email
    db.expire_all()
    assert db.query(PushSubscription).count() == 0


def test_delivery_respects_runtime_toggles(monkeypatch, db, make_user, outbox):
    user = make_user(UserRole.citizen)
    row = AppSettings.load(db)
    row.email_notifications_enabled = False
    row.push_notifications_enabled = False
    n = _notification(db, user)
    monkeypatch.setattr(notify_push, "send_push", lambda *a: pytest.fail("push disabled"))

    notifications.deliver_notifications_safe([n.id])
    assert outbox == []


def test_delivery_failure_is_logged_not_raised(monkeypatch, db, make_user, caplog):
    user = make_user(UserRole.citizen)
    n = _notification(db, user)

    def boom(*args):
        raise OSError("smtp down")

    monkeypatch.setattr(settings, "email_provider", "smtp")
    monkeypatch.setitem(notify_email.PROVIDERS, "smtp", boom)
    notifications.deliver_notifications_safe([n.id])
    assert "email delivery failed" in caplog.text
