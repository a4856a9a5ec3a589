from __future__ import annotations

import re
from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, field_validator

_HHMM = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")
_DAYS = {"monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"}


class NotificationPreferenceUpdate(BaseModel):
    email_enabled: bool | None = None
    in_app_enabled: bool | None = None
    sms_enabled: bool | None = None
    quiet_hours_enabled: bool | None = None
    quiet_hours_start: str | None = None
    quiet_hours_end: str | None = None
    quiet_hours_days: list[str] | None = None
    timezone: str | None = None

    @field_validator("quiet_hours_start", "quiet_hours_end")
    @classmethod
    def _check_hhmm(cls, value: str | None) -> str | None:
        if value is not None and not _HHMM.match(value):
            raise ValueError("Expected HH:MM (24h)")
        return value

    @field_validator("quiet_hours_days")
    @classmethod
    def _check_days(cls, value: list[str] | None) -> list[str] | None:
        if value is None:
            return value
        days = [day.strip().lower() for day in value]
        unknown = [day for day in days if day not in _DAYS]
        if unknown:
            raise ValueError(f"Unknown weekday(s): {', '.join(unknown)}")
        return days


class NotificationPreferenceRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    email: str
    email_enabled: bool
    in_app_enabled: bool
    sms_enabled: bool
    quiet_hours_enabled: bool
    quiet_hours_start: str | None = None
    quiet_hours_end: str | None = None
    quiet_hours_days: list[str]
    timezone: str
    created_at: datetime
    updated_at: datetime
