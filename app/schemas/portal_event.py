from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field, model_validator

EventType = Literal["info_session", "social", "workshop", "panel", "deadline", "other"]


class PortalEventCreate(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    description: Optional[str] = None
    start_at: datetime
    end_at: datetime
    location: Optional[str] = None
    event_type: EventType = "other"
    is_required: bool = False
    capacity: Optional[int] = Field(default=None, ge=1)
    rsvp_enabled: bool = True
    rsvp_deadline: Optional[datetime] = None
    check_in_enabled: bool = False
    check_in_code: Optional[str] = Field(default=None, max_length=50)

    @model_validator(mode="after")
    def _check_times(self):
        if self.end_at <= self.start_at:
            raise ValueError("end_at must be after start_at")
        return self


class PortalEventUpdate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    start_at: Optional[datetime] = None
    end_at: Optional[datetime] = None
    location: Optional[str] = None
    event_type: Optional[EventType] = None
    is_required: Optional[bool] = None
    capacity: Optional[int] = Field(default=None, ge=1)
    rsvp_enabled: Optional[bool] = None
    rsvp_deadline: Optional[datetime] = None
    check_in_enabled: Optional[bool] = None
    check_in_code: Optional[str] = Field(default=None, max_length=50)


class PortalEventOut(BaseModel):
    event_id: int
    cycle_id: int
    title: str
    description: Optional[str] = None
    start_at: datetime
    end_at: datetime
    location: Optional[str] = None
    event_type: str
    is_required: bool
    capacity: Optional[int] = None
    rsvp_count: int
    rsvp_enabled: bool
    rsvp_deadline: Optional[datetime] = None
    check_in_enabled: bool

    class Config:
        from_attributes = True


class PortalEventAdminOut(PortalEventOut):
    check_in_code: Optional[str] = None
    created_by: Optional[str] = None


class RsvpOut(BaseModel):
    rsvp_id: int
    cycle_id: int
    event_id: int
    user_id: str
    applicant_name: Optional[str] = None
    applicant_email: Optional[str] = None
    rsvp_at: datetime
    checked_in_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class CheckInRequest(BaseModel):
    code: str = Field(min_length=1, max_length=50)


class AttendanceSummary(BaseModel):
    event_id: int
    rsvp_count: int
    checked_in_count: int
