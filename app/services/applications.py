from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Iterable

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.datetime_utils import utc_now_naive
from app.core.errors import Conflict, NotFound, ValidationError
from app.core.stage_machine import DRAFT, SUBMITTED, can_transition, is_known_stage, normalize_stage_name
from app.core.tracks import BOTH, SLOT_COFFEE_CHAT, normalize_track
from app.models.application import RecApplication
from app.models.cycle import RecCycle
from app.models.review import RecReview
from app.models.slot import RecSlot, RecSlotBooking
from app.schemas.application import ApplicationDraftIn, ApplicationListItem
from app.schemas.user import UserContext
from app.services.activity import log_activity, publish_activity
from app.services.cycles import cycle_setting, portal_is_open
from app.services.questions import get_fields_for_track

logger = logging.getLogger("abg.recruitment")


@dataclass(frozen=True)
class StageTransitionResult:
    application_id: int
    from_stage: str | None
    to_stage: str
    changed: bool


async def get_application(session: AsyncSession, application_id: int) -> RecApplication:
    application = await session.get(RecApplication, application_id)
    if not application:
        raise NotFound("Application not found")
    return application


async def get_my_application(session: AsyncSession, *, cycle_id: int, user_id: str) -> RecApplication | None:
    return (
        await session.execute(
            select(RecApplication).where(RecApplication.cycle_id == cycle_id, RecApplication.user_id == user_id)
        )
    ).scalars().first()


def _resolve_applicant_track(cycle: RecCycle, raw: str) -> str:
    track = normalize_track(raw)
    if track is None or track == BOTH:
        raise ValidationError("Choose a valid track")
    allowed = cycle_setting(cycle, "tracks")
    if allowed and track not in {normalize_track(item) for item in allowed}:
        raise ValidationError("Track is not open in this cycle")
    return track


async def save_draft(
    session: AsyncSession, *, cycle: RecCycle, user: UserContext, payload: ApplicationDraftIn
) -> RecApplication:
    if not portal_is_open(cycle):
        raise ValidationError("The application portal is closed")
    track = _resolve_applicant_track(cycle, payload.track)
    now = utc_now_naive()

    application = await get_my_application(session, cycle_id=cycle.cycle_id, user_id=user.user_id)
    if application is None:
        application = RecApplication(
            cycle_id=cycle.cycle_id,
            user_id=user.user_id,
            email=str(user.email),
            full_name=user.full_name,
            track=track,
            stage=DRAFT,
            answers=dict(payload.answers),
            files=dict(payload.files or {}),
            last_saved_at=now,
        )
        session.add(application)
        try:
            await session.commit()
        except IntegrityError:
            await session.rollback()
            raise Conflict("An application already exists for this cycle")
        return application

    if normalize_stage_name(application.stage) != DRAFT:
        raise ValidationError("Application has already been submitted")
    if track != application.track:
        if not cycle_setting(cycle, "allow_track_change", False):
            raise ValidationError("Track cannot be changed for this cycle")
        application.track = track

    application.answers = dict(payload.answers)
    if payload.files is not None:
        application.files = {**(application.files or {}), **payload.files}
    application.last_saved_at = now
    await session.commit()
    return application


def _is_answered(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, str):
        return bool(value.strip())
    if isinstance(value, (list, tuple, dict)):
        return len(value) > 0
    if isinstance(value, bool):
        return value
    return True


def missing_required_fields(fields: list[dict], answers: dict, files: dict) -> list[str]:
    missing: list[str] = []
    for field in fields:
        if not field.get("required"):
            continue
        key = field.get("key")
        value = files.get(key) if field.get("type") == "file" else answers.get(key)
        if not _is_answered(value):
            missing.append(str(key))
    return missing


def _word_limit_violations(fields: list[dict], answers: dict) -> list[str]:
    over: list[str] = []
    for field in fields:
        limit = field.get("word_limit")
        value = answers.get(field.get("key"))
        if limit and isinstance(value, str) and len(value.split()) > int(limit):
            over.append(str(field.get("key")))
    return over


async def submit_application(session: AsyncSession, *, cycle: RecCycle, user: UserContext) -> RecApplication:
    application = await get_my_application(session, cycle_id=cycle.cycle_id, user_id=user.user_id)
    if application is None:
        raise NotFound("No draft application to submit")
    if normalize_stage_name(application.stage) != DRAFT:
        raise ValidationError("Application has already been submitted")
    now = utc_now_naive()
    if now > cycle.application_due_at:
        raise ValidationError("The application deadline has passed")

    fields = await get_fields_for_track(session, cycle.cycle_id, application.track)
    answers = application.answers or {}
    files = application.files or {}
    missing = missing_required_fields(fields, answers, files)
    if cycle_setting(cycle, "require_resume", False) and not files.get("resume"):
        missing.append("resume")
    if cycle_setting(cycle, "require_headshot", False) and not files.get("headshot"):
        missing.append("headshot")
    if missing:
        raise ValidationError(f"Missing required answers: {', '.join(sorted(set(missing)))}")
    over = _word_limit_violations(fields, answers)
    if over:
        raise ValidationError(f"Answers exceed the word limit: {', '.join(over)}")

    result = await session.execute(
        update(RecApplication)
        .where(RecApplication.application_id == application.application_id, RecApplication.stage == DRAFT)
        .values(stage=SUBMITTED, submitted_at=now, last_saved_at=now, updated_at=now)
    )
    if result.rowcount != 1:
        await session.rollback()
        raise Conflict("Application changed while submitting; reload and retry")
    event = await log_activity(
        session,
        entity_type="application",
        entity_id=application.application_id,
        action_type="application_submitted",
        cycle_id=cycle.cycle_id,
        from_status=DRAFT,
        to_status=SUBMITTED,
        performed_by_email=str(user.email),
        meta_json={"track": application.track},
    )
    await session.commit()
    await session.refresh(application)
    await publish_activity(event)
    logger.info("application_submitted", extra={"application_id": application.application_id})
    return application


async def transition_stage(
    session: AsyncSession,
    *,
    application_id: int,
    to_stage: str,
    override: bool = False,
    actor_email: str | None = None,
    reason: str | None = None,
) -> StageTransitionResult:
    target = normalize_stage_name(to_stage)
    if not target or not is_known_stage(target):
        raise ValidationError("Invalid target stage")

    application = await get_application(session, application_id)
    current = application.stage
    if not can_transition(current, target, override=override):
        raise ValidationError(f"Cannot move application from {current} to {target}")

    now = utc_now_naive()
    values: dict[str, Any] = {"stage": target, "updated_at": now}
    if target == SUBMITTED and application.submitted_at is None:
        values["submitted_at"] = now
    result = await session.execute(
        update(RecApplication)
        .where(RecApplication.application_id == application_id, RecApplication.stage == current)
        .values(**values)
    )
    if result.rowcount != 1:
        await session.rollback()
        raise Conflict("Application stage changed concurrently; reload and retry")

    event = await log_activity(
        session,
        entity_type="application",
        entity_id=application_id,
        action_type="stage_override" if override else "stage_changed",
        cycle_id=application.cycle_id,
        from_status=current,
        to_status=target,
        performed_by_email=actor_email,
        meta_json={"reason": reason} if reason else None,
    )
    await session.commit()
    await session.refresh(application)
    await publish_activity(event)
    logger.info(
        "application_stage_changed",
        extra={"application_id": application_id, "from_stage": current, "to_stage": target, "override": override},
    )
    return StageTransitionResult(application_id=application_id, from_stage=current, to_stage=target, changed=True)


async def bulk_update_stages(
    session: AsyncSession,
    *,
    application_ids: Iterable[int],
    to_stage: str,
    actor_email: str | None = None,
    reason: str | None = None,
) -> int:
    """Admin override for many applications at once; all or nothing."""
    target = normalize_stage_name(to_stage)
    if not target or not is_known_stage(target):
        raise ValidationError("Invalid target stage")
    ids = sorted(set(application_ids))
    rows = (
        await session.execute(select(RecApplication).where(RecApplication.application_id.in_(ids)))
    ).scalars().all()
    if len(rows) != len(ids):
        raise NotFound("One or more applications were not found")

    now = utc_now_naive()
    events = []
    updated = 0
    for application in rows:
        current = application.stage
        if normalize_stage_name(current) == target:
            continue
        result = await session.execute(
            update(RecApplication)
            .where(RecApplication.application_id == application.application_id, RecApplication.stage == current)
            .values(stage=target, updated_at=now)
        )
        if result.rowcount != 1:
            await session.rollback()
            raise Conflict("An application changed during the bulk update; nothing was applied")
        events.append(
            await log_activity(
                session,
                entity_type="application",
                entity_id=application.application_id,
                action_type="stage_bulk_override",
                cycle_id=application.cycle_id,
                from_status=current,
                to_status=target,
                performed_by_email=actor_email,
                meta_json={"reason": reason} if reason else None,
            )
        )
        updated += 1
    await session.commit()
    for event in events:
        await publish_activity(event)
    return updated


async def list_applications(
    session: AsyncSession,
    *,
    cycle_id: int,
    stages: list[str] | None = None,
    track: str | None = None,
) -> list[ApplicationListItem]:
    query = select(RecApplication).where(RecApplication.cycle_id == cycle_id)
    if stages:
        normalized = [normalize_stage_name(stage) for stage in stages if normalize_stage_name(stage)]
        query = query.where(RecApplication.stage.in_(normalized))
    if track:
        normalized_track = normalize_track(track)
        if normalized_track is None:
            raise ValidationError("Unknown track")
        if normalized_track != BOTH:
            query = query.where(RecApplication.track == normalized_track)
    query = query.order_by(RecApplication.submitted_at.is_(None), RecApplication.submitted_at.asc(), RecApplication.application_id.asc())
    applications = list((await session.execute(query)).scalars().all())
    if not applications:
        return []

    ids = [row.application_id for row in applications]
    review_rows = (
        await session.execute(select(RecReview.application_id, RecReview.scores).where(RecReview.application_id.in_(ids)))
    ).all()
    review_counts: dict[int, int] = {}
    score_totals: dict[int, list[float]] = {}
    for application_id, scores in review_rows:
        review_counts[application_id] = review_counts.get(application_id, 0) + 1
        values = [float(v) for v in (scores or {}).values() if isinstance(v, (int, float))]
        if values:
            score_totals.setdefault(application_id, []).append(sum(values) / len(values))

    booking_rows = (
        await session.execute(
            select(RecSlotBooking.application_id, RecSlotBooking.slot_kind).where(RecSlotBooking.application_id.in_(ids))
        )
    ).all()
    kinds: dict[int, set[str]] = {}
    for application_id, kind in booking_rows:
        kinds.setdefault(application_id, set()).add(kind)

    items: list[ApplicationListItem] = []
    for application in applications:
        averages = score_totals.get(application.application_id)
        booked = kinds.get(application.application_id, set())
        items.append(
            ApplicationListItem(
                application_id=application.application_id,
                full_name=application.full_name,
                email=application.email,
                track=application.track,
                stage=application.stage,
                review_count=review_counts.get(application.application_id, 0),
                average_score=round(sum(averages) / len(averages), 2) if averages else None,
                has_coffee_chat=SLOT_COFFEE_CHAT in booked,
                has_interview=any(kind != SLOT_COFFEE_CHAT for kind in booked),
                submitted_at=application.submitted_at,
            )
        )
    return items


async def count_by_stage(session: AsyncSession, *, cycle_id: int) -> dict[str, int]:
    rows = (
        await session.execute(
            select(RecApplication.stage, func.count())
            .where(RecApplication.cycle_id == cycle_id)
            .group_by(RecApplication.stage)
        )
    ).all()
    return {stage: int(count) for stage, count in rows}


async def update_notes(
    session: AsyncSession, *, application_id: int, notes: str, actor_email: str | None = None
) -> RecApplication:
    application = await get_application(session, application_id)
    application.admin_notes = notes
    application.updated_at = utc_now_naive()
    event = await log_activity(
        session,
        entity_type="application",
        entity_id=application_id,
        action_type="notes_updated",
        cycle_id=application.cycle_id,
        performed_by_email=actor_email,
    )
    await session.commit()
    await publish_activity(event)
    return application


def ensure_files_editable(application: RecApplication) -> None:
    if normalize_stage_name(application.stage) != DRAFT:
        raise ValidationError("Files can only be changed on a draft application")


async def record_file(
    session: AsyncSession, *, application: RecApplication, question_key: str, url: str
) -> RecApplication:
    ensure_files_editable(application)
    application.files = {**(application.files or {}), question_key: url}
    application.last_saved_at = utc_now_naive()
    await session.commit()
    return application


async def delete_application(session: AsyncSession, *, application_id: int, actor_email: str | None = None) -> None:
    """Removes the application with its reviews and bookings, releasing booked slot capacity."""
    application = await get_application(session, application_id)
    cycle_id = application.cycle_id
    stage = application.stage
    email = application.email

    bookings = (
        await session.execute(
            select(RecSlotBooking.booking_id, RecSlotBooking.slot_id).where(
                RecSlotBooking.application_id == application_id
            )
        )
    ).all()
    for booking_id, slot_id in bookings:
        removed = await session.execute(
            delete(RecSlotBooking)
            .where(RecSlotBooking.booking_id == booking_id)
            .execution_options(synchronize_session=False)
        )
        # A booking cancelled concurrently has already given its seat back.
        if removed.rowcount != 1:
            continue
        await session.execute(
            update(RecSlot)
            .where(RecSlot.slot_id == slot_id, RecSlot.booked_count > 0)
            .values(booked_count=RecSlot.booked_count - 1)
            .execution_options(synchronize_session=False)
        )
    await session.execute(delete(RecReview).where(RecReview.application_id == application_id))
    deleted = await session.execute(
        delete(RecApplication)
        .where(RecApplication.application_id == application_id)
        .execution_options(synchronize_session=False)
    )
    if deleted.rowcount != 1:
        await session.rollback()
        raise NotFound("Application not found")
    event = await log_activity(
        session,
        entity_type="application",
        entity_id=application_id,
        action_type="application_deleted",
        cycle_id=cycle_id,
        from_status=stage,
        performed_by_email=actor_email,
        meta_json={"email": email},
    )
    await session.commit()
    await publish_activity(event)
