# app/services/notify_email.py
"""
E-mail delivery for notification records.

One template serves every notification type; the title, message, priority
and issue link come straight from the stored record. Provider is SMTP or
Resend, chosen by EMAIL_PROVIDER. While the sending domain is unverified,
mail goes to EMAIL_REDIRECT_TO with a banner naming the real recipient.
"""
import logging
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from html import escape
from typing import Optional

import resend

from app.core.config import settings

logger = logging.getLogger(__name__)

PRIORITY_COLOURS = {"low": "#6b7280", "medium": "#1d4ed8", "high": "#b91c1c"}

TPL_NOTIFICATION = """
<table width="100%%" cellpadding="0" cellspacing="0" style="background:#f4f6fa;padding:24px;">
  <tr><td align="center">
    <table width="560" cellpadding="0" cellspacing="0"
           style="background:#ffffff;border-radius:10px;padding:22px;border:1px solid #e5e7eb;
                  font-family:Arial,Helvetica,sans-serif;color:#111827;font-size:14px;line-height:1.6;">
      <tr><td style="font-size:18px;font-weight:700;padding-bottom:10px;">Civic Issue Desk</td></tr>
      <tr><td>%(banner)s</td></tr>
      <tr><td>
        <span style="display:inline-block;padding:2px 8px;border-radius:10px;font-size:11px;
                     color:#ffffff;background:%(colour)s;">%(priority)s priority</span>
        <p style="font-size:16px;font-weight:700;margin:10px 0 4px 0;">%(title)s</p>
        <p style="margin:0 0 12px 0;">%(message)s</p>
        %(link)s
      </td></tr>
      <tr><td style="padding-top:14px;font-size:11px;color:#6b7280;border-top:1px solid #e5e7eb;">
        You receive this because you reported, handle or oversee the issue above.
      </td></tr>
    </table>
  </td></tr>
</table>
"""


def _sender() -> str:
    addr = settings.email_from_address
    return f"{settings.email_from_name} <{addr}>" if settings.email_from_name else addr


def _via_smtp(to_email: str, subject: str, html: str) -> None:
    if not (settings.smtp_host and settings.smtp_username and settings.smtp_password and settings.email_from_address):
        logger.debug("SMTP not configured; skipping mail to %s", to_email)
        return
    msg = MIMEMultipart("alternative")
    msg["Subject"] = subject
    msg["From"] = _sender()
    msg["To"] = to_email
    msg.attach(MIMEText(html, "html"))

    if settings.smtp_use_ssl:
        server = smtplib.SMTP_SSL(settings.smtp_host, settings.smtp_port, timeout=15)
    else:
        server = smtplib.SMTP(settings.smtp_host, settings.smtp_port, timeout=15)
        server.starttls()
    try:
        server.login(settings.smtp_username, settings.smtp_password)
        server.send_message(msg)
    finally:
        server.quit()


def _via_resend(to_email: str, subject: str, html: str) -> None:
    if not (settings.resend_api_key and settings.email_from_address):
        logger.debug("Resend not configured; skipping mail to %s", to_email)
        return
    resend.api_key = settings.resend_api_key
    resend.Emails.send({"from": _sender(), "to": [to_email], "subject": subject, "html": html})


PROVIDERS = {"smtp": _via_smtp, "resend": _via_resend}


def resolve_recipient(email: str) -> tuple[str, Optional[str]]:
    """Returns (address to send to, original address if redirected)."""
    if settings.email_domain_verified or not settings.email_redirect_to:
        return email, None
    return settings.email_redirect_to, email


def build_url(path: str) -> str:
    base = (settings.frontend_base_url or "").strip().rstrip("/")
    path = path.lstrip("/")
    if not base:
        return f"/{path}"
    if not base.startswith(("http://", "https://")):
        base = f"https://{base}"
    return f"{base}/{path}"


def render_notification_email(title: str, message: str, priority: str = "medium",
                              action_url: Optional[str] = None, redirected_from: Optional[str] = None) -> str:
    banner = ""
    if redirected_from:
        banner = (
            '<div style="background:#fef2f2;color:#b91c1c;padding:6px 10px;border-radius:6px;'
            f'font-size:11px;margin-bottom:10px;">Test mode: originally addressed to {escape(redirected_from)}</div>'
        )
    link = ""
    if action_url:
        url = escape(build_url(action_url))
        link = (
            f'<a href="{url}" style="display:inline-block;padding:9px 18px;background:#1d4ed8;color:#ffffff;'
            f'border-radius:6px;text-decoration:none;font-weight:600;">View issue</a>'
        )
    return TPL_NOTIFICATION % {
        "banner": banner,
        "colour": PRIORITY_COLOURS.get(priority, PRIORITY_COLOURS["medium"]),
        "priority": escape(priority.capitalize()),
        "title": escape(title),
        "message": escape(message),
        "link": link,
    }


def send_notification_email(to_email: str, title: str, message: str, priority: str = "medium",
                            action_url: Optional[str] = None) -> None:
    recipient, redirected_from = resolve_recipient(to_email)
    html = render_notification_email(title, message, priority, action_url, redirected_from)
    send = PROVIDERS.get(settings.email_provider.lower(), _via_smtp)
    send(recipient, title, html)
