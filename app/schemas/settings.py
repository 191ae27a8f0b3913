# app/schemas/settings.py
from typing import Optional
from pydantic import BaseModel, Field

class SettingsOut(BaseModel):
    auto_assign_issues: bool
    auto_escalate_days: int
    email_notifications_enabled: bool
    push_notifications_enabled: bool

class SettingsPatch(BaseModel):
    auto_assign_issues: Optional[bool] = None
    auto_escalate_days: Optional[int] = Field(default=None, ge=1, le=365)
    email_notifications_enabled: Optional[bool] = None
    push_notifications_enabled: Optional[bool] = None
