# File: app/routers/settings.py
import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.core.clock import utcnow
from app.core.config import settings
from app.core.security import require_high_admin
from app.db.session import get_db
from app.models.app_settings import AppSettings
from app.schemas.settings import SettingsOut, SettingsPatch

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin/settings", tags=["admin-settings"], dependencies=[Depends(require_high_admin)])


def _out(s: AppSettings) -> SettingsOut:
    return SettingsOut(
        auto_assign_issues=s.auto_assign_issues,
        auto_escalate_days=s.auto_escalate_days,
        email_notifications_enabled=s.email_notifications_enabled,
        push_notifications_enabled=s.push_notifications_enabled,
    )


@router.get("", response_model=SettingsOut)
def get_settings(db: Session = Depends(get_db)):
    s = AppSettings.load(db, settings.auto_escalate_days)
    db.commit()
    return _out(s)


@router.put("", response_model=SettingsOut)
def update_settings(payload: SettingsPatch, db: Session = Depends(get_db)):
    s = AppSettings.load(db, settings.auto_escalate_days)
    changes = {k: v for k, v in payload.model_dump(exclude_unset=True).items() if v is not None}
    for key, value in changes.items():
        setattr(s, key, value)
    s.updated_at = utcnow()
    db.commit()
    db.refresh(s)
    logger.info("app settings updated: %s", sorted(changes))
    return _out(s)
