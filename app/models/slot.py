from datetime import datetime

from sqlalchemy import CheckConstraint, DateTime, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from app.core.datetime_utils import utc_now_naive
from app.db.base import Base


class RecSlot(Base):
    __tablename__ = "rec_slot"
    __table_args__ = (
        CheckConstraint("booked_count >= 0 AND booked_count <= max_bookings", name="ck_rec_slot_capacity"),
    )

    slot_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    cycle_id: Mapped[int] = mapped_column(Integer, index=True)
    kind: Mapped[str] = mapped_column(String(50), index=True)

    host_name: Mapped[str] = mapped_column(String(200))
    host_email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    start_time: Mapped[datetime] = mapped_column(DateTime, index=True)
    end_time: Mapped[datetime] = mapped_column(DateTime)
    duration_minutes: Mapped[int] = mapped_column(Integer, default=30)
    location: Mapped[str | None] = mapped_column(String(255), nullable=True)
    meeting_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    for_track: Mapped[str | None] = mapped_column(String(50), nullable=True)

    max_bookings: Mapped[int] = mapped_column(Integer, default=1)
    booked_count: Mapped[int] = mapped_column(Integer, default=0)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now_naive)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now_naive, onupdate=utc_now_naive)


class RecSlotBooking(Base):
    __tablename__ = "rec_slot_booking"
    # One booking per applicant per slot kind within a cycle.
    __table_args__ = (UniqueConstraint("cycle_id", "user_id", "slot_kind", name="uq_rec_slot_booking_user_kind"),)

    booking_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    cycle_id: Mapped[int] = mapped_column(Integer, index=True)
    slot_id: Mapped[int] = mapped_column(Integer, index=True)
    user_id: Mapped[str] = mapped_column(String(255), index=True)
    application_id: Mapped[int | None] = mapped_column(Integer, nullable=True, index=True)
    slot_kind: Mapped[str] = mapped_column(String(50))

    applicant_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    applicant_email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    status: Mapped[str] = mapped_column(String(20), default="confirmed")

    booked_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now_naive)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now_naive, onupdate=utc_now_naive)
