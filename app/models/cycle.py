from datetime import datetime
from typing import Any

from sqlalchemy import JSON, Boolean, DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from app.core.datetime_utils import utc_now_naive
from app.db.base import Base


class RecCycle(Base):
    __tablename__ = "rec_cycle"

    cycle_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    slug: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=False, index=True)

    portal_open_at: Mapped[datetime] = mapped_column(DateTime, index=True)
    portal_close_at: Mapped[datetime] = mapped_column(DateTime)
    application_due_at: Mapped[datetime] = mapped_column(DateTime)
    settings_json: Mapped[dict[str, Any] | None] = mapped_column("settings", JSON, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now_naive)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now_naive, onupdate=utc_now_naive)
