from datetime import datetime
from typing import List, Optional

from pydantic import AliasChoices, BaseModel, Field, model_validator


class RecruitmentConnect(BaseModel):
    name: str
    email: str
    photo: Optional[str] = None
    major: Optional[str] = None
    role_last_semester: Optional[str] = None


class CycleSettings(BaseModel):
    require_resume: bool = False
    require_headshot: bool = False
    allow_track_change: bool = False
    email_from_name: Optional[str] = None
    email_reply_to: Optional[str] = None
    tracks: Optional[List[str]] = None
    recruitment_connects: Optional[List[RecruitmentConnect]] = None


class CycleCreate(BaseModel):
    slug: str = Field(min_length=1, max_length=100, pattern=r"^[a-z0-9][a-z0-9-]*$")
    name: str = Field(min_length=1, max_length=255)
    is_active: bool = False
    portal_open_at: datetime
    portal_close_at: datetime
    application_due_at: datetime
    settings: Optional[CycleSettings] = None

    @model_validator(mode="after")
    def _check_window(self):
        if self.portal_close_at <= self.portal_open_at:
            raise ValueError("portal_close_at must be after portal_open_at")
        return self


class CycleUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    is_active: Optional[bool] = None
    portal_open_at: Optional[datetime] = None
    portal_close_at: Optional[datetime] = None
    application_due_at: Optional[datetime] = None
    settings: Optional[CycleSettings] = None


class CycleOut(BaseModel):
    cycle_id: int
    slug: str
    name: str
    is_active: bool
    portal_open_at: datetime
    portal_close_at: datetime
    application_due_at: datetime
    settings: Optional[CycleSettings] = Field(default=None, validation_alias=AliasChoices("settings_json", "settings"))
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class PublicCycleInfo(BaseModel):
    is_active: bool
    is_upcoming: bool = False
    cycle_name: Optional[str] = None
    portal_open_at: Optional[datetime] = None
    portal_close_at: Optional[datetime] = None
    application_due_at: Optional[datetime] = None
    portal_url: Optional[str] = None
    message: Optional[str] = None
