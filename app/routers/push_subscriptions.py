# File: app/routers/push_subscriptions.py
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.orm import Session

from app.core.errors import ValidationError
from app.core.security import get_current_user
from app.db.session import get_db
from app.models.push import PushSubscription
from app.models.user import User

router = APIRouter(prefix="/push", tags=["push"])


class SubscriptionKeys(BaseModel):
    p256dh: Optional[str] = None
    auth: Optional[str] = None


class SubscriptionIn(BaseModel):
    endpoint: Optional[str] = None
    keys: SubscriptionKeys = SubscriptionKeys()


@router.post("/subscribe")
def subscribe(sub: SubscriptionIn, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    if not (sub.endpoint and sub.keys.p256dh and sub.keys.auth):
        raise ValidationError("Bad subscription")
    # upsert by endpoint; a browser endpoint belongs to whoever subscribed last
    existing = db.query(PushSubscription).filter(PushSubscription.endpoint == sub.endpoint).first()
    if existing:
        existing.user_id = user.id
        existing.p256dh = sub.keys.p256dh
        existing.auth = sub.keys.auth
    else:
        db.add(PushSubscription(user_id=user.id, endpoint=sub.endpoint, p256dh=sub.keys.p256dh, auth=sub.keys.auth))
    db.commit()
    return {"ok": True}


@router.post("/unsubscribe")
def unsubscribe(sub: SubscriptionIn, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    if sub.endpoint:
        (
            db.query(PushSubscription)
            .filter(PushSubscription.endpoint == sub.endpoint, PushSubscription.user_id == user.id)
            .delete(synchronize_session=False)
        )
        db.commit()
    return {"ok": True}
