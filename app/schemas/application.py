from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from app.schemas.review import ReviewOut
from app.schemas.slot import BookingOut


class ApplicationDraftIn(BaseModel):
    track: str
    answers: Dict[str, Any] = Field(default_factory=dict)
    files: Optional[Dict[str, str]] = None


class ApplicationOut(BaseModel):
    application_id: int
    cycle_id: int
    user_id: str
    email: str
    full_name: Optional[str] = None
    track: str
    stage: str
    answers: Dict[str, Any]
    files: Dict[str, str]
    submitted_at: Optional[datetime] = None
    last_saved_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class ApplicationAdminOut(ApplicationOut):
    admin_notes: Optional[str] = None


class ApplicationListItem(BaseModel):
    application_id: int
    full_name: Optional[str] = None
    email: str
    track: str
    stage: str
    review_count: int = 0
    average_score: Optional[float] = None
    has_coffee_chat: bool = False
    has_interview: bool = False
    submitted_at: Optional[datetime] = None


class StageTransitionRequest(BaseModel):
    to_stage: str
    # Admin correction: allows backwards or skipping moves.
    override: bool = False
    reason: Optional[str] = None


class StageTransitionOut(BaseModel):
    application_id: int
    from_stage: Optional[str] = None
    to_stage: str
    changed: bool


class BulkStageRequest(BaseModel):
    application_ids: List[int] = Field(min_length=1)
    stage: str
    reason: Optional[str] = None


class BulkStageOut(BaseModel):
    updated: int


class NotesUpdate(BaseModel):
    admin_notes: str = ""


class UploadOut(BaseModel):
    question_key: str
    url: str
    filename: str


class ApplicationDetail(BaseModel):
    application: ApplicationAdminOut
    reviews: List[ReviewOut] = Field(default_factory=list)
    bookings: List[BookingOut] = Field(default_factory=list)
