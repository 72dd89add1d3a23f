from __future__ import annotations

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.datetime_utils import to_utc_naive, utc_now_naive
from app.core.errors import Conflict, NotFound, ValidationError
from app.models.portal_event import RecEventRsvp, RecPortalEvent
from app.schemas.portal_event import PortalEventCreate, PortalEventUpdate
from app.schemas.user import UserContext
from app.services.activity import log_activity, publish_activity
from app.services.cycles import get_cycle


async def get_event(session: AsyncSession, event_id: int) -> RecPortalEvent:
    event = await session.get(RecPortalEvent, event_id)
    if not event:
        raise NotFound("Event not found")
    return event


async def list_events(session: AsyncSession, *, cycle_id: int, upcoming_only: bool = False) -> list[RecPortalEvent]:
    query = select(RecPortalEvent).where(RecPortalEvent.cycle_id == cycle_id)
    if upcoming_only:
        query = query.where(RecPortalEvent.end_at > utc_now_naive())
    rows = await session.execute(query.order_by(RecPortalEvent.start_at.asc(), RecPortalEvent.event_id.asc()))
    return list(rows.scalars().all())


async def create_event(
    session: AsyncSession, *, cycle_id: int, payload: PortalEventCreate, actor_email: str | None = None
) -> RecPortalEvent:
    await get_cycle(session, cycle_id)
    data = payload.model_dump()
    for field in ("start_at", "end_at", "rsvp_deadline"):
        if data.get(field) is not None:
            data[field] = to_utc_naive(data[field])
    event = RecPortalEvent(cycle_id=cycle_id, rsvp_count=0, created_by=actor_email, **data)
    session.add(event)
    await session.commit()
    return event


async def update_event(session: AsyncSession, *, event_id: int, payload: PortalEventUpdate) -> RecPortalEvent:
    event = await get_event(session, event_id)
    updates = payload.model_dump(exclude_unset=True)

    if "capacity" in updates and updates["capacity"] is not None and updates["capacity"] != event.capacity:
        resized = await session.execute(
            update(RecPortalEvent)
            .where(RecPortalEvent.event_id == event_id, RecPortalEvent.rsvp_count <= updates["capacity"])
            .values(capacity=updates["capacity"])
            .execution_options(synchronize_session=False)
        )
        if resized.rowcount != 1:
            await session.rollback()
            raise Conflict("Capacity cannot drop below the number of RSVPs")
        updates.pop("capacity")

    for field, value in updates.items():
        if field in ("start_at", "end_at", "rsvp_deadline") and value is not None:
            value = to_utc_naive(value)
        setattr(event, field, value)
    if event.end_at <= event.start_at:
        await session.rollback()
        raise ValidationError("end_at must be after start_at")
    event.updated_at = utc_now_naive()
    await session.commit()
    await session.refresh(event)
    return event


async def delete_event(session: AsyncSession, *, event_id: int) -> None:
    event = await get_event(session, event_id)
    rsvps = (await session.execute(select(RecEventRsvp).where(RecEventRsvp.event_id == event_id))).scalars().all()
    for rsvp in rsvps:
        await session.delete(rsvp)
    await session.delete(event)
    await session.commit()


async def _claim_seat(session: AsyncSession, event_id: int) -> bool:
    result = await session.execute(
        update(RecPortalEvent)
        .where(
            RecPortalEvent.event_id == event_id,
            or_(RecPortalEvent.capacity.is_(None), RecPortalEvent.rsvp_count < RecPortalEvent.capacity),
        )
        .values(rsvp_count=RecPortalEvent.rsvp_count + 1)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


async def create_rsvp(session: AsyncSession, *, event_id: int, user: UserContext) -> RecEventRsvp:
    event = await get_event(session, event_id)
    if not event.rsvp_enabled:
        raise ValidationError("RSVP is not open for this event")
    if event.rsvp_deadline and utc_now_naive() > event.rsvp_deadline:
        raise ValidationError("The RSVP deadline has passed")

    if not await _claim_seat(session, event_id):
        await session.rollback()
        raise Conflict("Event is at capacity")
    rsvp = RecEventRsvp(
        cycle_id=event.cycle_id,
        event_id=event_id,
        user_id=user.user_id,
        applicant_name=user.full_name,
        applicant_email=str(user.email),
    )
    session.add(rsvp)
    try:
        await session.flush()
        activity = await log_activity(
            session,
            entity_type="event",
            entity_id=event_id,
            action_type="event_rsvp",
            cycle_id=event.cycle_id,
            performed_by_email=str(user.email),
        )
        await session.commit()
    except IntegrityError:
        await session.rollback()
        raise Conflict("You have already RSVPed to this event")
    await publish_activity(activity)
    return rsvp


async def delete_rsvp(session: AsyncSession, *, event_id: int, user: UserContext) -> None:
    deleted = await session.execute(
        delete(RecEventRsvp)
        .where(RecEventRsvp.event_id == event_id, RecEventRsvp.user_id == user.user_id)
        .execution_options(synchronize_session=False)
    )
    if deleted.rowcount != 1:
        await session.rollback()
        raise NotFound("RSVP not found")
    await session.execute(
        update(RecPortalEvent)
        .where(RecPortalEvent.event_id == event_id, RecPortalEvent.rsvp_count > 0)
        .values(rsvp_count=RecPortalEvent.rsvp_count - 1)
        .execution_options(synchronize_session=False)
    )
    await session.commit()


async def check_in(session: AsyncSession, *, event_id: int, code: str, user: UserContext) -> RecEventRsvp:
    event = await get_event(session, event_id)
    if not event.check_in_enabled:
        raise ValidationError("Check-in is not open for this event")
    if not event.check_in_code or event.check_in_code.strip().lower() != code.strip().lower():
        raise ValidationError("Invalid check-in code")

    now = utc_now_naive()
    rsvp = (
        await session.execute(
            select(RecEventRsvp).where(RecEventRsvp.event_id == event_id, RecEventRsvp.user_id == user.user_id)
        )
    ).scalars().first()
    if rsvp is None:
        # Walk-ins get an RSVP on the spot and still count against capacity.
        if not await _claim_seat(session, event_id):
            await session.rollback()
            raise Conflict("Event is at capacity")
        rsvp = RecEventRsvp(
            cycle_id=event.cycle_id,
            event_id=event_id,
            user_id=user.user_id,
            applicant_name=user.full_name,
            applicant_email=str(user.email),
        )
        session.add(rsvp)
    elif rsvp.checked_in_at is not None:
        return rsvp
    rsvp.checked_in_at = now
    try:
        await session.flush()
        activity = await log_activity(
            session,
            entity_type="event",
            entity_id=event_id,
            action_type="event_check_in",
            cycle_id=event.cycle_id,
            performed_by_email=str(user.email),
        )
        await session.commit()
    except IntegrityError:
        await session.rollback()
        raise Conflict("Check-in was recorded concurrently; reload")
    await publish_activity(activity)
    return rsvp


async def list_event_rsvps(session: AsyncSession, *, event_id: int) -> list[RecEventRsvp]:
    await get_event(session, event_id)
    rows = await session.execute(
        select(RecEventRsvp).where(RecEventRsvp.event_id == event_id).order_by(RecEventRsvp.rsvp_at.asc())
    )
    return list(rows.scalars().all())


async def list_user_rsvps(session: AsyncSession, *, cycle_id: int, user_id: str) -> list[RecEventRsvp]:
    rows = await session.execute(
        select(RecEventRsvp)
        .where(RecEventRsvp.cycle_id == cycle_id, RecEventRsvp.user_id == user_id)
        .order_by(RecEventRsvp.rsvp_at.asc())
    )
    return list(rows.scalars().all())


async def attendance_counts(session: AsyncSession, *, event_id: int) -> tuple[int, int]:
    rsvps, checked_in = (
        await session.execute(
            select(func.count(), func.count(RecEventRsvp.checked_in_at)).where(RecEventRsvp.event_id == event_id)
        )
    ).one()
    return int(rsvps), int(checked_in)
