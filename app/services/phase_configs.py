from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.datetime_utils import utc_now_naive
from app.core.errors import Conflict, NotFound, ValidationError
from app.core.tracks import (
    ALL_PHASES,
    BOTH,
    PHASE_APPLICATION,
    PHASE_ELIGIBLE_STAGES,
    PHASE_ENTRY_STAGE,
    PHASE_INTERVIEW_ROUND1,
    PHASE_INTERVIEW_ROUND2,
    normalize_track,
)
from app.models.application import RecApplication
from app.models.phase import RecPhaseConfig, RecPhaseDecision, RecPhaseRanking
from app.models.review import RecReview
from app.schemas.phase import PhaseCompleteness, PhaseConfigCreate, PhaseConfigUpdate, ReviewerCompletion
from app.services.activity import log_activity, publish_activity
from app.services.cycles import get_cycle

logger = logging.getLogger("abg.recruitment")

PHASE_NOT_STARTED = "not_started"
PHASE_IN_PROGRESS = "in_progress"
PHASE_FINALIZED = "finalized"


def _category(key: str, label: str, weight: float) -> dict[str, Any]:
    return {"key": key, "label": label, "min_score": 1, "max_score": 5, "weight": weight}


DEFAULT_SCORING_CATEGORIES: dict[str, list[dict[str, Any]]] = {
    PHASE_APPLICATION: [
        _category("overall", "Overall Impression", 0.3),
        _category("experience", "Relevant Experience", 0.25),
        _category("motivation", "Motivation & Fit", 0.25),
        _category("communication", "Written Communication", 0.2),
    ],
    PHASE_INTERVIEW_ROUND1: [
        _category("overall", "Overall Impression", 0.25),
        _category("technical", "Technical Knowledge", 0.3),
        _category("problem_solving", "Problem Solving", 0.25),
        _category("communication", "Communication", 0.2),
    ],
    PHASE_INTERVIEW_ROUND2: [
        _category("overall", "Overall Impression", 0.2),
        _category("cultural_fit", "Cultural Fit", 0.25),
        _category("leadership", "Leadership Potential", 0.2),
        _category("teamwork", "Teamwork & Collaboration", 0.2),
        _category("motivation", "Motivation & Commitment", 0.15),
    ],
}


def normalize_phase(raw: str | None) -> str:
    value = (raw or "").strip().lower()
    if value not in ALL_PHASES:
        raise ValidationError(f"Unknown phase: {raw}")
    return value


def normalize_config_track(raw: str | None) -> str:
    if raw is None or not raw.strip():
        return BOTH
    track = normalize_track(raw)
    if track is None:
        raise ValidationError(f"Unknown track: {raw}")
    return track


async def list_phase_configs(session: AsyncSession, cycle_id: int) -> list[RecPhaseConfig]:
    rows = await session.execute(
        select(RecPhaseConfig)
        .where(RecPhaseConfig.cycle_id == cycle_id)
        .order_by(RecPhaseConfig.phase.asc(), RecPhaseConfig.track.asc())
    )
    return list(rows.scalars().all())


async def get_phase_config(session: AsyncSession, phase_config_id: int) -> RecPhaseConfig:
    config = await session.get(RecPhaseConfig, phase_config_id)
    if not config:
        raise NotFound("Phase config not found")
    return config


async def create_phase_config(
    session: AsyncSession, *, cycle_id: int, payload: PhaseConfigCreate, actor_email: str | None = None
) -> RecPhaseConfig:
    """Inserts a new config; an existing (cycle, phase, track) is a conflict and is never overwritten."""
    await get_cycle(session, cycle_id)
    phase = normalize_phase(payload.phase)
    track = normalize_config_track(payload.track)
    config = RecPhaseConfig(
        cycle_id=cycle_id,
        phase=phase,
        track=track,
        status=payload.status,
        scoring_categories=[item.model_dump() for item in payload.scoring_categories]
        or [dict(item) for item in DEFAULT_SCORING_CATEGORIES[phase]],
        min_reviewers_required=payload.min_reviewers_required,
        referral_weights=payload.referral_weights.model_dump() if payload.referral_weights else None,
        use_z_score_normalization=payload.use_z_score_normalization,
        interview_questions=[item.model_dump() for item in payload.interview_questions]
        if payload.interview_questions is not None
        else None,
    )
    session.add(config)
    try:
        await session.flush()
        event = await log_activity(
            session,
            entity_type="phase_config",
            entity_id=config.phase_config_id,
            action_type="phase_config_created",
            cycle_id=cycle_id,
            to_status=config.status,
            performed_by_email=actor_email,
            meta_json={"phase": phase, "track": track},
        )
        await session.commit()
    except IntegrityError:
        await session.rollback()
        raise Conflict(f"A {phase} config for track {track} already exists in this cycle")
    await publish_activity(event)
    return config


async def update_phase_config(
    session: AsyncSession, phase_config_id: int, payload: PhaseConfigUpdate, *, actor_email: str | None = None
) -> RecPhaseConfig:
    config = await get_phase_config(session, phase_config_id)
    updates = payload.model_dump(exclude_unset=True)
    if config.status == PHASE_FINALIZED and set(updates) - {"status"}:
        raise Conflict("Phase is finalized; unlock it before editing")
    if "status" in updates and updates["status"] is not None:
        if updates["status"] == PHASE_FINALIZED and config.status != PHASE_FINALIZED:
            config.finalized_at = utc_now_naive()
            config.finalized_by = actor_email
        config.status = updates["status"]
    if payload.scoring_categories is not None:
        config.scoring_categories = [item.model_dump() for item in payload.scoring_categories]
    if payload.min_reviewers_required is not None:
        config.min_reviewers_required = payload.min_reviewers_required
    if "referral_weights" in updates:
        config.referral_weights = payload.referral_weights.model_dump() if payload.referral_weights else None
    if payload.use_z_score_normalization is not None:
        config.use_z_score_normalization = payload.use_z_score_normalization
    if "interview_questions" in updates:
        config.interview_questions = (
            [item.model_dump() for item in payload.interview_questions] if payload.interview_questions else None
        )
    config.updated_at = utc_now_naive()
    await session.commit()
    return config


async def initialize_phase_configs(session: AsyncSession, cycle_id: int) -> list[RecPhaseConfig]:
    """Creates the shared default config of every phase that does not have one yet."""
    await get_cycle(session, cycle_id)
    existing = {
        (row.phase, row.track)
        for row in (
            await session.execute(select(RecPhaseConfig).where(RecPhaseConfig.cycle_id == cycle_id))
        ).scalars()
    }
    created: list[RecPhaseConfig] = []
    for phase in ALL_PHASES:
        if (phase, BOTH) in existing:
            continue
        config = RecPhaseConfig(
            cycle_id=cycle_id,
            phase=phase,
            track=BOTH,
            status=PHASE_NOT_STARTED,
            scoring_categories=[dict(item) for item in DEFAULT_SCORING_CATEGORIES[phase]],
            min_reviewers_required=2,
            use_z_score_normalization=False,
        )
        session.add(config)
        created.append(config)
    try:
        await session.commit()
    except IntegrityError:
        await session.rollback()
        raise Conflict("Phase configs were initialized concurrently; reload")
    return created


async def resolve_phase_config(
    session: AsyncSession, *, cycle_id: int, phase: str, track: str | None
) -> RecPhaseConfig | None:
    normalized = normalize_config_track(track)
    candidates = [normalized] if normalized == BOTH else [normalized, BOTH]
    rows = (
        await session.execute(
            select(RecPhaseConfig).where(
                RecPhaseConfig.cycle_id == cycle_id,
                RecPhaseConfig.phase == normalize_phase(phase),
                RecPhaseConfig.track.in_(candidates),
            )
        )
    ).scalars().all()
    by_track = {row.track: row for row in rows}
    for candidate in candidates:
        if candidate in by_track:
            return by_track[candidate]
    return None


async def require_phase_config(
    session: AsyncSession, *, cycle_id: int, phase: str, track: str | None
) -> RecPhaseConfig:
    config = await resolve_phase_config(session, cycle_id=cycle_id, phase=phase, track=track)
    if not config:
        raise NotFound("Phase config not found")
    return config


async def finalize_phase(
    session: AsyncSession, *, cycle_id: int, phase: str, track: str | None, actor_email: str
) -> RecPhaseConfig:
    config = await require_phase_config(session, cycle_id=cycle_id, phase=phase, track=track)
    if config.status == PHASE_FINALIZED:
        raise Conflict("Phase is already finalized")
    previous = config.status
    now = utc_now_naive()
    config.status = PHASE_FINALIZED
    config.finalized_at = now
    config.finalized_by = actor_email
    config.updated_at = now
    event = await log_activity(
        session,
        entity_type="phase_config",
        entity_id=config.phase_config_id,
        action_type="phase_finalized",
        cycle_id=cycle_id,
        from_status=previous,
        to_status=PHASE_FINALIZED,
        performed_by_email=actor_email,
        meta_json={"phase": config.phase, "track": config.track},
    )
    await session.commit()
    await publish_activity(event)
    return config


async def unlock_phase(
    session: AsyncSession, *, cycle_id: int, phase: str, track: str | None, actor_email: str
) -> RecPhaseConfig:
    config = await require_phase_config(session, cycle_id=cycle_id, phase=phase, track=track)
    previous = config.status
    config.status = PHASE_IN_PROGRESS
    config.finalized_at = None
    config.finalized_by = None
    config.cutoff_applied_at = None
    config.cutoff_applied_by = None
    config.cutoff_criteria = None
    config.cutoff_ranking_id = None
    config.updated_at = utc_now_naive()
    event = await log_activity(
        session,
        entity_type="phase_config",
        entity_id=config.phase_config_id,
        action_type="phase_unlocked",
        cycle_id=cycle_id,
        from_status=previous,
        to_status=PHASE_IN_PROGRESS,
        performed_by_email=actor_email,
        meta_json={"phase": config.phase, "track": config.track},
    )
    await session.commit()
    await publish_activity(event)
    return config


async def revert_phase(
    session: AsyncSession, *, cycle_id: int, phase: str, track: str | None, actor_email: str
) -> int:
    """
    Undoes a phase's cutoff: applications still sitting in the stage a decision moved them to
    return to the phase's entry stage. Decisions and rankings for the phase are removed.
    """
    phase = normalize_phase(phase)
    config_track = normalize_config_track(track)
    entry_stage = PHASE_ENTRY_STAGE[phase]
    now = utc_now_naive()

    decisions = (
        await session.execute(
            select(RecPhaseDecision).where(
                RecPhaseDecision.cycle_id == cycle_id,
                RecPhaseDecision.phase == phase,
                RecPhaseDecision.track == config_track,
            )
        )
    ).scalars().all()

    reverted = 0
    for decision in decisions:
        result = await session.execute(
            update(RecApplication)
            .where(
                RecApplication.application_id == decision.application_id,
                RecApplication.stage == decision.new_stage,
            )
            .values(stage=entry_stage, updated_at=now)
        )
        reverted += result.rowcount or 0

    await session.execute(
        delete(RecPhaseDecision).where(
            RecPhaseDecision.cycle_id == cycle_id,
            RecPhaseDecision.phase == phase,
            RecPhaseDecision.track == config_track,
        )
    )
    await session.execute(
        delete(RecPhaseRanking).where(
            RecPhaseRanking.cycle_id == cycle_id,
            RecPhaseRanking.phase == phase,
            RecPhaseRanking.track == config_track,
        )
    )
    config = await resolve_phase_config(session, cycle_id=cycle_id, phase=phase, track=config_track)
    if config is not None:
        config.status = PHASE_IN_PROGRESS
        config.finalized_at = None
        config.finalized_by = None
        config.cutoff_applied_at = None
        config.cutoff_applied_by = None
        config.cutoff_criteria = None
        config.cutoff_ranking_id = None
        config.updated_at = now
    event = await log_activity(
        session,
        entity_type="phase_config",
        entity_id=config.phase_config_id if config else None,
        action_type="phase_reverted",
        cycle_id=cycle_id,
        to_status=entry_stage,
        performed_by_email=actor_email,
        meta_json={"phase": phase, "track": config_track, "reverted": reverted},
    )
    await session.commit()
    await publish_activity(event)
    logger.info("phase_reverted", extra={"cycle_id": cycle_id, "phase": phase, "reverted": reverted})
    return reverted


def eligible_application_query(*, cycle_id: int, phase: str, track: str | None):
    query = select(RecApplication).where(
        RecApplication.cycle_id == cycle_id,
        RecApplication.stage.in_(PHASE_ELIGIBLE_STAGES[phase]),
    )
    if track and track != BOTH:
        query = query.where(RecApplication.track.in_((track, BOTH)))
    return query


async def get_phase_completeness(
    session: AsyncSession, *, cycle_id: int, phase: str, track: str | None = None
) -> PhaseCompleteness:
    phase = normalize_phase(phase)
    config_track = normalize_config_track(track)
    config = await resolve_phase_config(session, cycle_id=cycle_id, phase=phase, track=config_track)
    min_reviewers = config.min_reviewers_required if config and config.min_reviewers_required else 2

    applications = (
        await session.execute(eligible_application_query(cycle_id=cycle_id, phase=phase, track=config_track))
    ).scalars().all()
    application_ids = {row.application_id for row in applications}
    total = len(application_ids)

    reviews = (
        await session.execute(
            select(RecReview.application_id, RecReview.reviewer_email).where(
                RecReview.cycle_id == cycle_id, RecReview.phase == phase
            )
        )
    ).all()

    per_application: dict[int, int] = {}
    per_reviewer: dict[str, set[int]] = {}
    for application_id, reviewer_email in reviews:
        per_reviewer.setdefault(reviewer_email, set())
        if application_id not in application_ids:
            continue
        per_application[application_id] = per_application.get(application_id, 0) + 1
        per_reviewer[reviewer_email].add(application_id)

    completion = [
        ReviewerCompletion(
            email=email,
            reviewed=len(reviewed),
            total=total,
            percentage=round(len(reviewed) / total * 100, 2) if total else 0.0,
        )
        for email, reviewed in per_reviewer.items()
    ]
    completion.sort(key=lambda item: (-item.percentage, item.email))

    return PhaseCompleteness(
        cycle_id=cycle_id,
        phase=phase,
        track=config_track,
        status=config.status if config else PHASE_NOT_STARTED,
        total_applicants=total,
        applicants_with_reviews=sum(1 for count in per_application.values() if count > 0),
        applicants_fully_reviewed=sum(1 for count in per_application.values() if count >= min_reviewers),
        reviewer_completion=completion,
    )
