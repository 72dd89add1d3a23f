from datetime import datetime
from typing import Any

from sqlalchemy import JSON, Boolean, DateTime, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from app.core.datetime_utils import utc_now_naive
from app.db.base import Base


class RecPhaseConfig(Base):
    __tablename__ = "rec_phase_config"
    __table_args__ = (UniqueConstraint("cycle_id", "phase", "track", name="uq_rec_phase_config_cycle_phase_track"),)

    phase_config_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    cycle_id: Mapped[int] = mapped_column(Integer, index=True)
    phase: Mapped[str] = mapped_column(String(50))
    # "both" is the wildcard config that applies to every track.
    track: Mapped[str] = mapped_column(String(50), default="both")
    status: Mapped[str] = mapped_column(String(20), default="not_started")

    scoring_categories: Mapped[list[dict[str, Any]]] = mapped_column(JSON, default=list)
    min_reviewers_required: Mapped[int] = mapped_column(Integer, default=2)
    referral_weights: Mapped[dict[str, float] | None] = mapped_column(JSON, nullable=True)
    use_z_score_normalization: Mapped[bool] = mapped_column(Boolean, default=False)
    interview_questions: Mapped[list[dict[str, Any]] | None] = mapped_column(JSON, nullable=True)

    finalized_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    finalized_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    cutoff_applied_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    cutoff_applied_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    cutoff_criteria: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    cutoff_ranking_id: Mapped[int | None] = mapped_column(Integer, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now_naive)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now_naive, onupdate=utc_now_naive)


class RecPhaseRanking(Base):
    __tablename__ = "rec_phase_ranking"
    __table_args__ = (
        UniqueConstraint("cycle_id", "phase", "track", "version", name="uq_rec_phase_ranking_version"),
    )

    ranking_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    cycle_id: Mapped[int] = mapped_column(Integer, index=True)
    phase: Mapped[str] = mapped_column(String(50))
    track: Mapped[str] = mapped_column(String(50), default="both")
    version: Mapped[int] = mapped_column(Integer, default=1)
    rankings: Mapped[list[dict[str, Any]]] = mapped_column(JSON, default=list)

    generated_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now_naive)
    finalized_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now_naive)


class RecPhaseDecision(Base):
    __tablename__ = "rec_phase_decision"
    __table_args__ = (UniqueConstraint("ranking_id", "application_id", name="uq_rec_phase_decision_ranking_app"),)

    decision_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    cycle_id: Mapped[int] = mapped_column(Integer, index=True)
    phase: Mapped[str] = mapped_column(String(50))
    track: Mapped[str] = mapped_column(String(50), default="both")
    ranking_id: Mapped[int] = mapped_column(Integer, index=True)
    application_id: Mapped[int] = mapped_column(Integer, index=True)

    action: Mapped[str] = mapped_column(String(20))
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    previous_stage: Mapped[str] = mapped_column(String(50))
    new_stage: Mapped[str] = mapped_column(String(50))
    performed_by: Mapped[str] = mapped_column(String(255))
    performed_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now_naive)
