from datetime import datetime
from typing import Any

from sqlalchemy import JSON, DateTime, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from app.core.datetime_utils import utc_now_naive
from app.db.base import Base


class RecReview(Base):
    __tablename__ = "rec_review"
    __table_args__ = (
        UniqueConstraint("application_id", "phase", "reviewer_email", name="uq_rec_review_app_phase_reviewer"),
    )

    review_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    cycle_id: Mapped[int] = mapped_column(Integer, index=True)
    application_id: Mapped[int] = mapped_column(Integer, index=True)
    phase: Mapped[str] = mapped_column(String(50), index=True)
    track: Mapped[str | None] = mapped_column(String(50), nullable=True)

    reviewer_email: Mapped[str] = mapped_column(String(255))
    reviewer_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    scores: Mapped[dict[str, float]] = mapped_column(JSON, default=dict)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    question_notes: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    recommendation: Mapped[str | None] = mapped_column(String(20), nullable=True)
    referral_signal: Mapped[str] = mapped_column(String(20), default="neutral")

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now_naive)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now_naive, onupdate=utc_now_naive)
