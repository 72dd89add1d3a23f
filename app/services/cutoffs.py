from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.datetime_utils import utc_now_naive
from app.core.errors import Conflict, NotFound, ValidationError
from app.core.tracks import PHASE_ELIGIBLE_STAGES, PHASE_OUTCOMES
from app.models.application import RecApplication
from app.models.phase import RecPhaseConfig, RecPhaseDecision
from app.schemas.phase import CutoffCriteria, ManualOverride
from app.services.activity import log_activity, publish_activity
from app.services.phase_configs import PHASE_FINALIZED, normalize_config_track, normalize_phase, resolve_phase_config
from app.services.ranking import build_ranking, get_latest_phase_ranking, stage_ranking

logger = logging.getLogger("abg.recruitment")


@dataclass(frozen=True)
class CutoffResult:
    ranking_id: int
    ranking_version: int
    advanced: list[int]
    rejected: list[int]


def classify(
    rankings: list[dict],
    criteria: CutoffCriteria,
    overrides: list[ManualOverride],
) -> dict[int, tuple[str, str | None]]:
    """Maps application id to (decision, reason); overrides win over the criteria."""
    override_map = {item.application_id: item for item in overrides} if criteria.include_manual_overrides else {}
    decisions: dict[int, tuple[str, str | None]] = {}
    for index, entry in enumerate(rankings):
        application_id = entry["application_id"]
        override = override_map.get(application_id)
        if override is not None:
            action = "manual_advance" if override.action == "advance" else "manual_reject"
            decisions[application_id] = (action, override.reason or None)
            continue
        if criteria.type == "top_n":
            advance = index < (criteria.top_n or 0)
        elif criteria.type == "min_score":
            advance = entry["weighted_score"] >= float(criteria.min_score or 0)
        else:
            advance = False
        decisions[application_id] = ("advance" if advance else "reject", None)
    return decisions


async def apply_cutoff(
    session: AsyncSession,
    *,
    cycle_id: int,
    phase: str,
    track: str | None,
    criteria: CutoffCriteria,
    overrides: list[ManualOverride],
    actor_email: str,
    ranking_version: int | None = None,
    finalize_after: bool = True,
) -> CutoffResult:
    """
    Ranks the phase and moves every ranked application in one transaction.
    Any application that changed stage in the meantime aborts the whole batch.
    With `finalize_after` the phase config is finalized in the same transaction,
    locking its reviews.
    """
    phase = normalize_phase(phase)
    config_track = normalize_config_track(track)
    config = await resolve_phase_config(session, cycle_id=cycle_id, phase=phase, track=config_track)
    if config is None:
        raise NotFound("Phase config not found")
    if config.cutoff_applied_at is not None:
        raise Conflict("Cutoff has already been applied for this phase")

    latest = await get_latest_phase_ranking(session, cycle_id=cycle_id, phase=phase, track=config_track)
    if ranking_version is not None and (latest is None or latest.version != ranking_version):
        raise Conflict("Ranking has changed since it was reviewed; regenerate and retry")

    rankings = await build_ranking(session, cycle_id=cycle_id, phase=phase, track=config_track)
    ranked_ids = {entry["application_id"] for entry in rankings}
    unknown = [item.application_id for item in overrides if item.application_id not in ranked_ids]
    if unknown:
        raise ValidationError(f"Overrides reference applications outside this phase: {unknown}")

    decisions = classify(rankings, criteria, overrides)
    now = utc_now_naive()
    for entry in rankings:
        action, reason = decisions[entry["application_id"]]
        entry["decision"] = action
        entry["decision_reason"] = reason
        entry["decision_by"] = actor_email
        entry["decision_at"] = now.isoformat()

    outcomes = PHASE_OUTCOMES[phase]
    eligible = PHASE_ELIGIBLE_STAGES[phase]
    stages = {
        row.application_id: row.stage
        for row in (
            await session.execute(select(RecApplication).where(RecApplication.application_id.in_(list(ranked_ids))))
        ).scalars()
    }

    advanced: list[int] = []
    rejected: list[int] = []
    try:
        ranking = await stage_ranking(
            session, cycle_id=cycle_id, phase=phase, track=config_track, rankings=rankings, finalized=True
        )
        for entry in rankings:
            application_id = entry["application_id"]
            action, reason = decisions[application_id]
            is_advance = action in ("advance", "manual_advance")
            new_stage = outcomes["advance" if is_advance else "reject"]
            previous_stage = stages.get(application_id)
            result = await session.execute(
                update(RecApplication)
                .where(
                    RecApplication.application_id == application_id,
                    RecApplication.stage == previous_stage,
                    RecApplication.stage.in_(eligible),
                )
                .values(stage=new_stage, updated_at=now)
            )
            if result.rowcount != 1:
                raise Conflict(f"Application {application_id} changed stage during the cutoff; nothing was applied")
            session.add(
                RecPhaseDecision(
                    cycle_id=cycle_id,
                    phase=phase,
                    track=config_track,
                    ranking_id=ranking.ranking_id,
                    application_id=application_id,
                    action=action,
                    reason=reason,
                    previous_stage=previous_stage,
                    new_stage=new_stage,
                    performed_by=actor_email,
                    performed_at=now,
                )
            )
            (advanced if is_advance else rejected).append(application_id)

        stamp = dict(
            cutoff_applied_at=now,
            cutoff_applied_by=actor_email,
            cutoff_criteria=criteria.model_dump(),
            cutoff_ranking_id=ranking.ranking_id,
            updated_at=now,
        )
        if finalize_after:
            stamp.update(status=PHASE_FINALIZED, finalized_at=now, finalized_by=actor_email)
        # Only the first of two racing cutoffs can stamp the config.
        stamped = await session.execute(
            update(RecPhaseConfig)
            .where(
                RecPhaseConfig.phase_config_id == config.phase_config_id,
                RecPhaseConfig.cutoff_applied_at.is_(None),
            )
            .values(**stamp)
        )
        if stamped.rowcount != 1:
            raise Conflict("Cutoff has already been applied for this phase")
        event = await log_activity(
            session,
            entity_type="phase_config",
            entity_id=config.phase_config_id,
            action_type="cutoff_applied",
            cycle_id=cycle_id,
            to_status=outcomes["advance"],
            performed_by_email=actor_email,
            meta_json={
                "phase": phase,
                "track": config_track,
                "ranking_id": ranking.ranking_id,
                "advanced": len(advanced),
                "rejected": len(rejected),
            },
        )
        await session.commit()
    except Conflict:
        await session.rollback()
        raise
    except IntegrityError:
        await session.rollback()
        raise Conflict("Cutoff decisions already exist for this ranking")

    await session.refresh(config)
    await publish_activity(event)
    logger.info(
        "cutoff_applied",
        extra={"cycle_id": cycle_id, "phase": phase, "advanced": len(advanced), "rejected": len(rejected)},
    )
    return CutoffResult(
        ranking_id=ranking.ranking_id, ranking_version=ranking.version, advanced=advanced, rejected=rejected
    )


async def get_phase_decisions(
    session: AsyncSession, *, cycle_id: int, phase: str, track: str | None = None
) -> list[RecPhaseDecision]:
    query = select(RecPhaseDecision).where(
        RecPhaseDecision.cycle_id == cycle_id, RecPhaseDecision.phase == normalize_phase(phase)
    )
    if track:
        query = query.where(RecPhaseDecision.track == normalize_config_track(track))
    rows = await session.execute(query.order_by(RecPhaseDecision.performed_at.asc(), RecPhaseDecision.decision_id.asc()))
    return list(rows.scalars().all())
