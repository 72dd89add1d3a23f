from datetime import datetime

from sqlalchemy import Boolean, DateTime, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from app.core.datetime_utils import utc_now_naive
from app.db.base import Base


class RecPortalEvent(Base):
    __tablename__ = "rec_portal_event"

    event_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    cycle_id: Mapped[int] = mapped_column(Integer, index=True)
    title: Mapped[str] = mapped_column(String(255))
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    start_at: Mapped[datetime] = mapped_column(DateTime, index=True)
    end_at: Mapped[datetime] = mapped_column(DateTime)
    location: Mapped[str | None] = mapped_column(String(255), nullable=True)
    event_type: Mapped[str] = mapped_column(String(30), default="other")
    is_required: Mapped[bool] = mapped_column(Boolean, default=False)

    capacity: Mapped[int | None] = mapped_column(Integer, nullable=True)
    rsvp_count: Mapped[int] = mapped_column(Integer, default=0)
    rsvp_enabled: Mapped[bool] = mapped_column(Boolean, default=True)
    rsvp_deadline: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    check_in_enabled: Mapped[bool] = mapped_column(Boolean, default=False)
    check_in_code: Mapped[str | None] = mapped_column(String(50), nullable=True)

    created_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now_naive)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now_naive, onupdate=utc_now_naive)


class RecEventRsvp(Base):
    __tablename__ = "rec_event_rsvp"
    __table_args__ = (UniqueConstraint("event_id", "user_id", name="uq_rec_event_rsvp_event_user"),)

    rsvp_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    cycle_id: Mapped[int] = mapped_column(Integer, index=True)
    event_id: Mapped[int] = mapped_column(Integer, index=True)
    user_id: Mapped[str] = mapped_column(String(255), index=True)
    applicant_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    applicant_email: Mapped[str | None] = mapped_column(String(255), nullable=True)

    rsvp_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now_naive)
    checked_in_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
