from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field, model_validator

BookingStatus = Literal["confirmed", "completed", "no_show"]


class SlotCreate(BaseModel):
    kind: str
    host_name: str = Field(min_length=1, max_length=200)
    host_email: Optional[str] = None
    start_time: datetime
    end_time: Optional[datetime] = None
    duration_minutes: int = Field(default=30, ge=5, le=480)
    location: Optional[str] = None
    meeting_url: Optional[str] = None
    for_track: Optional[str] = None
    max_bookings: int = Field(default=1, ge=1)
    notes: Optional[str] = None

    @model_validator(mode="after")
    def _check_times(self):
        if self.end_time is not None and self.end_time <= self.start_time:
            raise ValueError("end_time must be after start_time")
        return self


class SlotBulkCreate(BaseModel):
    slots: List[SlotCreate] = Field(min_length=1)


class SlotUpdate(BaseModel):
    host_name: Optional[str] = None
    host_email: Optional[str] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    location: Optional[str] = None
    meeting_url: Optional[str] = None
    for_track: Optional[str] = None
    max_bookings: Optional[int] = Field(default=None, ge=1)
    notes: Optional[str] = None


class SlotOut(BaseModel):
    slot_id: int
    cycle_id: int
    kind: str
    host_name: str
    host_email: Optional[str] = None
    start_time: datetime
    end_time: datetime
    duration_minutes: int
    location: Optional[str] = None
    meeting_url: Optional[str] = None
    for_track: Optional[str] = None
    max_bookings: int
    booked_count: int
    notes: Optional[str] = None

    class Config:
        from_attributes = True


class BookingOut(BaseModel):
    booking_id: int
    cycle_id: int
    slot_id: int
    user_id: str
    application_id: Optional[int] = None
    slot_kind: str
    applicant_name: Optional[str] = None
    applicant_email: Optional[str] = None
    status: str
    booked_at: datetime

    class Config:
        from_attributes = True


class BookingStatusUpdate(BaseModel):
    status: BookingStatus


class BookingCreate(BaseModel):
    slot_id: int
