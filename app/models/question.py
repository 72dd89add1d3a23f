from datetime import datetime
from typing import Any

from sqlalchemy import JSON, DateTime, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from app.core.datetime_utils import utc_now_naive
from app.db.base import Base


class RecQuestionSet(Base):
    __tablename__ = "rec_question_set"
    __table_args__ = (UniqueConstraint("cycle_id", "track", name="uq_rec_question_set_cycle_track"),)

    question_set_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    cycle_id: Mapped[int] = mapped_column(Integer, index=True)
    track: Mapped[str] = mapped_column(String(50))
    fields: Mapped[list[dict[str, Any]]] = mapped_column(JSON, default=list)

    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now_naive, onupdate=utc_now_naive)
