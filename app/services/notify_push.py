# app/services/notify_push.py
import json
import logging
from pywebpush import webpush, WebPushException
from app.core.config import settings

logger = logging.getLogger(__name__)

VAPID_PRIVATE = settings.vapid_private_key
VAPID_PUBLIC = settings.vapid_public_key
VAPID_CLAIMS = {"sub": settings.vapid_sub}

def push_configured() -> bool:
    return bool(VAPID_PRIVATE and VAPID_PUBLIC)

def send_push(subscription: dict, payload: dict) -> bool:
    """Returns False when the push service rejected the subscription."""
    if not push_configured():
        return True
    try:
        webpush(
            subscription_info=subscription,
            data=json.dumps(payload),
            vapid_private_key=VAPID_PRIVATE,
            vapid_claims=dict(VAPID_CLAIMS),
        )
    except WebPushException as e:
        status = getattr(getattr(e, "response", None), "status_code", None)
        logger.warning("push failed (status=%s): %s", status, e)
        # 404/410 mean the browser dropped the subscription
        return status not in (404, 410)
    return True
