from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.datetime_utils import utc_now_naive
from app.core.errors import Conflict, ValidationError
from app.core.tracks import BOTH, normalize_track
from app.models.question import RecQuestionSet
from app.schemas.question import QuestionField
from app.services.cycles import get_cycle


def sort_fields(fields: list[dict]) -> list[dict]:
    return sorted(fields, key=lambda item: (int(item.get("order") or 0), str(item.get("key") or "")))


async def get_questions_by_cycle(
    session: AsyncSession, cycle_id: int, track: str | None = None
) -> list[RecQuestionSet]:
    """
    Without a track, every set for the cycle.
    With a track, that track's set, else the shared `both` set, else nothing.
    """
    if track is None:
        rows = await session.execute(
            select(RecQuestionSet).where(RecQuestionSet.cycle_id == cycle_id).order_by(RecQuestionSet.track.asc())
        )
        return list(rows.scalars().all())

    normalized = normalize_track(track)
    if normalized is None:
        raise ValidationError("Unknown track")
    candidates = [normalized] if normalized == BOTH else [normalized, BOTH]
    rows = (
        await session.execute(
            select(RecQuestionSet).where(RecQuestionSet.cycle_id == cycle_id, RecQuestionSet.track.in_(candidates))
        )
    ).scalars().all()
    by_track = {row.track: row for row in rows}
    for candidate in candidates:
        if candidate in by_track:
            return [by_track[candidate]]
    return []


async def get_fields_for_track(session: AsyncSession, cycle_id: int, track: str) -> list[dict]:
    sets = await get_questions_by_cycle(session, cycle_id, track)
    return sort_fields(sets[0].fields or []) if sets else []


async def upsert_questions(
    session: AsyncSession, cycle_id: int, track: str, fields: list[QuestionField]
) -> RecQuestionSet:
    await get_cycle(session, cycle_id)
    normalized = normalize_track(track)
    if normalized is None:
        raise ValidationError("Unknown track")

    seen: set[str] = set()
    for field in fields:
        if field.key in seen:
            raise ValidationError(f"Duplicate question key: {field.key}")
        seen.add(field.key)
        if field.type in ("select", "multiselect") and not field.options:
            raise ValidationError(f"Question {field.key} needs options")

    payload = sort_fields([field.model_dump(exclude_none=True) for field in fields])
    existing = (
        await session.execute(
            select(RecQuestionSet).where(RecQuestionSet.cycle_id == cycle_id, RecQuestionSet.track == normalized)
        )
    ).scalars().first()
    if existing:
        existing.fields = payload
        existing.updated_at = utc_now_naive()
        question_set = existing
    else:
        question_set = RecQuestionSet(cycle_id=cycle_id, track=normalized, fields=payload)
        session.add(question_set)
    try:
        await session.commit()
    except IntegrityError:
        await session.rollback()
        raise Conflict("Question set was created concurrently; retry")
    return question_set
