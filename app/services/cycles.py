from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.datetime_utils import to_utc_naive, utc_now_naive
from app.core.errors import Conflict, NotFound, ValidationError
from app.models.application import RecApplication
from app.models.cycle import RecCycle
from app.models.phase import RecPhaseConfig, RecPhaseDecision, RecPhaseRanking
from app.models.portal_event import RecEventRsvp, RecPortalEvent
from app.models.question import RecQuestionSet
from app.models.slot import RecSlot, RecSlotBooking
from app.schemas.cycle import CycleCreate, CycleUpdate
from app.services.activity import log_activity, publish_activity

logger = logging.getLogger("abg.recruitment")


async def get_active_cycle(session: AsyncSession, now: datetime | None = None) -> RecCycle | None:
    """
    The flagged cycle whose portal window contains `now`.
    If flags overlap, the most recently opened cycle wins.
    """
    current = to_utc_naive(now) if now else utc_now_naive()
    return (
        await session.execute(
            select(RecCycle)
            .where(
                RecCycle.is_active.is_(True),
                RecCycle.portal_open_at <= current,
                RecCycle.portal_close_at > current,
            )
            .order_by(RecCycle.portal_open_at.desc(), RecCycle.cycle_id.desc())
            .limit(1)
        )
    ).scalars().first()


async def get_upcoming_cycle(session: AsyncSession, now: datetime | None = None) -> RecCycle | None:
    current = to_utc_naive(now) if now else utc_now_naive()
    return (
        await session.execute(
            select(RecCycle)
            .where(RecCycle.portal_open_at > current)
            .order_by(RecCycle.portal_open_at.asc(), RecCycle.cycle_id.asc())
            .limit(1)
        )
    ).scalars().first()


async def list_cycles(session: AsyncSession) -> list[RecCycle]:
    rows = await session.execute(select(RecCycle).order_by(RecCycle.portal_open_at.desc(), RecCycle.cycle_id.desc()))
    return list(rows.scalars().all())


async def get_cycle(session: AsyncSession, cycle_id: int) -> RecCycle:
    cycle = await session.get(RecCycle, cycle_id)
    if not cycle:
        raise NotFound("Cycle not found")
    return cycle


async def _clear_other_flags(session: AsyncSession, cycle_id: int) -> None:
    await session.execute(
        update(RecCycle)
        .where(RecCycle.cycle_id != cycle_id, RecCycle.is_active.is_(True))
        .values(is_active=False, updated_at=utc_now_naive())
    )


async def set_active_cycle(session: AsyncSession, cycle_id: int, *, actor_email: str | None = None) -> RecCycle:
    cycle = await get_cycle(session, cycle_id)
    await _clear_other_flags(session, cycle_id)
    cycle.is_active = True
    cycle.updated_at = utc_now_naive()
    event = await log_activity(
        session,
        entity_type="cycle",
        entity_id=cycle.cycle_id,
        action_type="cycle_activated",
        cycle_id=cycle.cycle_id,
        performed_by_email=actor_email,
    )
    await session.commit()
    await publish_activity(event)
    return cycle


async def create_cycle(session: AsyncSession, payload: CycleCreate, *, actor_email: str | None = None) -> RecCycle:
    cycle = RecCycle(
        slug=payload.slug,
        name=payload.name.strip(),
        is_active=payload.is_active,
        portal_open_at=to_utc_naive(payload.portal_open_at),
        portal_close_at=to_utc_naive(payload.portal_close_at),
        application_due_at=to_utc_naive(payload.application_due_at),
        settings_json=payload.settings.model_dump(exclude_none=True) if payload.settings else None,
    )
    session.add(cycle)
    try:
        await session.flush()
        if cycle.is_active:
            await _clear_other_flags(session, cycle.cycle_id)
        event = await log_activity(
            session,
            entity_type="cycle",
            entity_id=cycle.cycle_id,
            action_type="cycle_created",
            cycle_id=cycle.cycle_id,
            performed_by_email=actor_email,
            meta_json={"slug": cycle.slug},
        )
        await session.commit()
    except IntegrityError:
        await session.rollback()
        raise Conflict("A cycle with this slug already exists")
    await publish_activity(event)
    logger.info("cycle_created", extra={"cycle_id": cycle.cycle_id, "slug": cycle.slug})
    return cycle


async def update_cycle(
    session: AsyncSession, cycle_id: int, payload: CycleUpdate, *, actor_email: str | None = None
) -> RecCycle:
    cycle = await get_cycle(session, cycle_id)
    updates = payload.model_dump(exclude_unset=True)

    if "name" in updates and updates["name"] is not None:
        cycle.name = updates["name"].strip()
    for field in ("portal_open_at", "portal_close_at", "application_due_at"):
        if updates.get(field) is not None:
            setattr(cycle, field, to_utc_naive(updates[field]))
    if "settings" in updates:
        cycle.settings_json = payload.settings.model_dump(exclude_none=True) if payload.settings else None
    if cycle.portal_close_at <= cycle.portal_open_at:
        await session.rollback()
        raise ValidationError("portal_close_at must be after portal_open_at")

    if updates.get("is_active") is True:
        await _clear_other_flags(session, cycle.cycle_id)
        cycle.is_active = True
    elif updates.get("is_active") is False:
        cycle.is_active = False

    cycle.updated_at = utc_now_naive()
    event = await log_activity(
        session,
        entity_type="cycle",
        entity_id=cycle.cycle_id,
        action_type="cycle_updated",
        cycle_id=cycle.cycle_id,
        performed_by_email=actor_email,
        meta_json={"fields": sorted(updates)},
    )
    await session.commit()
    await publish_activity(event)
    return cycle


# Per-cycle configuration removed together with the cycle.
CYCLE_CONFIG_MODELS = (RecQuestionSet, RecPhaseConfig, RecPhaseRanking, RecPhaseDecision, RecSlot, RecPortalEvent)


async def _count_for_cycle(session: AsyncSession, model, cycle_id: int) -> int:
    return (await session.execute(select(func.count()).select_from(model).where(model.cycle_id == cycle_id))).scalar_one()


async def delete_cycle(session: AsyncSession, cycle_id: int, *, actor_email: str | None = None) -> None:
    """
    Deletes a cycle with its question sets, phase configs, rankings, slots and events.
    Refused while applicants have applied, booked a slot or RSVPed.
    """
    cycle = await get_cycle(session, cycle_id)
    if await _count_for_cycle(session, RecApplication, cycle_id):
        raise Conflict("Cycle has applications and cannot be deleted")
    if await _count_for_cycle(session, RecSlotBooking, cycle_id):
        raise Conflict("Cycle has slot bookings and cannot be deleted")
    if await _count_for_cycle(session, RecEventRsvp, cycle_id):
        raise Conflict("Cycle has event RSVPs and cannot be deleted")

    removed: dict[str, int] = {}
    for model in CYCLE_CONFIG_MODELS:
        result = await session.execute(
            delete(model).where(model.cycle_id == cycle_id).execution_options(synchronize_session=False)
        )
        removed[model.__tablename__] = result.rowcount or 0
    await session.delete(cycle)
    event = await log_activity(
        session,
        entity_type="cycle",
        entity_id=cycle_id,
        action_type="cycle_deleted",
        performed_by_email=actor_email,
        meta_json={"removed": removed},
    )
    await session.commit()
    await publish_activity(event)


def cycle_setting(cycle: RecCycle, key: str, default=None):
    return (cycle.settings_json or {}).get(key, default)


def portal_is_open(cycle: RecCycle, now: datetime | None = None) -> bool:
    current = to_utc_naive(now) if now else utc_now_naive()
    return bool(cycle.is_active) and cycle.portal_open_at <= current < cycle.portal_close_at


async def require_active_cycle(session: AsyncSession) -> RecCycle:
    cycle = await get_active_cycle(session)
    if not cycle:
        raise NotFound("No active recruitment cycle")
    return cycle
