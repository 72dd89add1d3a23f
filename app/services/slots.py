from __future__ import annotations

import logging
from datetime import datetime, timedelta

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.datetime_utils import to_utc_naive, utc_now_naive
from app.core.errors import Conflict, Forbidden, NotFound, ValidationError
from app.core.stage_machine import DRAFT, PHASE1_REVIEW, SUBMITTED, normalize_stage_name
from app.core.tracks import ALL_SLOT_KINDS, BOTH, SLOT_COFFEE_CHAT, normalize_track, track_matches
from app.models.cycle import RecCycle
from app.models.slot import RecSlot, RecSlotBooking
from app.schemas.slot import SlotCreate, SlotUpdate
from app.schemas.user import UserContext
from app.services.activity import log_activity, publish_activity
from app.services.applications import get_my_application
from app.services.cycles import get_cycle

logger = logging.getLogger("abg.recruitment")

# Stages from which an applicant may book each slot kind.
BOOKABLE_STAGES: dict[str, tuple[str, ...]] = {
    SLOT_COFFEE_CHAT: (DRAFT, SUBMITTED, PHASE1_REVIEW),
    "interview_round1": ("interview_round1",),
    "interview_round2": ("interview_round2",),
}


def normalize_slot_kind(raw: str | None) -> str:
    value = (raw or "").strip().lower()
    if value not in ALL_SLOT_KINDS:
        raise ValidationError(f"Unknown slot kind: {raw}")
    return value


def _slot_track(raw: str | None) -> str | None:
    if raw is None or not raw.strip():
        return None
    track = normalize_track(raw)
    if track is None:
        raise ValidationError(f"Unknown track: {raw}")
    return None if track == BOTH else track


async def get_slot(session: AsyncSession, slot_id: int) -> RecSlot:
    slot = await session.get(RecSlot, slot_id)
    if not slot:
        raise NotFound("Slot not found")
    return slot


async def book_slot(session: AsyncSession, *, cycle: RecCycle, slot_id: int, user: UserContext) -> RecSlotBooking:
    slot = await get_slot(session, slot_id)
    if slot.cycle_id != cycle.cycle_id:
        raise ValidationError("Slot is not in the current cycle")
    if slot.start_time <= utc_now_naive():
        raise ValidationError("Slot has already started")

    application = await get_my_application(session, cycle_id=cycle.cycle_id, user_id=user.user_id)
    if slot.kind != SLOT_COFFEE_CHAT and application is None:
        raise ValidationError("You must submit an application first")
    if application is not None:
        if normalize_stage_name(application.stage) not in BOOKABLE_STAGES[slot.kind]:
            raise ValidationError("You are not eligible to book this slot at your current stage")
        if slot.for_track and not track_matches(application.track, slot.for_track):
            raise ValidationError("This slot is for a different track")

    # Capacity is claimed by the conditional increment itself; a full slot matches no row.
    claimed = await session.execute(
        update(RecSlot)
        .where(RecSlot.slot_id == slot_id, RecSlot.booked_count < RecSlot.max_bookings)
        .values(booked_count=RecSlot.booked_count + 1)
        .execution_options(synchronize_session=False)
    )
    if claimed.rowcount != 1:
        await session.rollback()
        raise Conflict("Slot is full")

    booking = RecSlotBooking(
        cycle_id=cycle.cycle_id,
        slot_id=slot_id,
        user_id=user.user_id,
        application_id=application.application_id if application else None,
        slot_kind=slot.kind,
        applicant_name=user.full_name,
        applicant_email=str(user.email),
        status="confirmed",
    )
    session.add(booking)
    try:
        await session.flush()
        event = await log_activity(
            session,
            entity_type="booking",
            entity_id=booking.booking_id,
            action_type="slot_booked",
            cycle_id=cycle.cycle_id,
            to_status="confirmed",
            performed_by_email=str(user.email),
            meta_json={"slot_id": slot_id, "kind": slot.kind},
        )
        await session.commit()
    except IntegrityError:
        await session.rollback()
        raise Conflict("You already have a booking of this kind")
    await publish_activity(event)
    logger.info("slot_booked", extra={"slot_id": slot_id, "booking_id": booking.booking_id})
    return booking


async def cancel_booking(session: AsyncSession, *, booking_id: int, user: UserContext) -> None:
    """Releases the seat; nobody is promoted from a waitlist."""
    booking = await session.get(RecSlotBooking, booking_id)
    if not booking:
        raise NotFound("Booking not found")
    if booking.user_id != user.user_id and not user.is_admin:
        raise Forbidden("You can only cancel your own bookings")

    slot_id = booking.slot_id
    cycle_id = booking.cycle_id
    status = booking.status
    slot_kind = booking.slot_kind

    # The seat is released only by the request whose DELETE removed the row.
    deleted = await session.execute(
        delete(RecSlotBooking)
        .where(RecSlotBooking.booking_id == booking_id)
        .execution_options(synchronize_session=False)
    )
    if deleted.rowcount != 1:
        await session.rollback()
        raise NotFound("Booking not found")
    await session.execute(
        update(RecSlot)
        .where(RecSlot.slot_id == slot_id, RecSlot.booked_count > 0)
        .values(booked_count=RecSlot.booked_count - 1)
        .execution_options(synchronize_session=False)
    )
    event = await log_activity(
        session,
        entity_type="booking",
        entity_id=booking_id,
        action_type="booking_cancelled",
        cycle_id=cycle_id,
        from_status=status,
        performed_by_email=str(user.email),
        meta_json={"slot_id": slot_id, "kind": slot_kind},
    )
    await session.commit()
    await publish_activity(event)


async def get_available_slots(
    session: AsyncSession, *, cycle_id: int, kind: str, track: str | None = None
) -> list[RecSlot]:
    kind = normalize_slot_kind(kind)
    query = select(RecSlot).where(
        RecSlot.cycle_id == cycle_id,
        RecSlot.kind == kind,
        RecSlot.start_time > utc_now_naive(),
        RecSlot.booked_count < RecSlot.max_bookings,
    )
    slot_track = _slot_track(track)
    if slot_track:
        query = query.where(or_(RecSlot.for_track.is_(None), RecSlot.for_track == slot_track))
    rows = await session.execute(query.order_by(RecSlot.start_time.asc(), RecSlot.slot_id.asc()))
    return list(rows.scalars().all())


async def list_user_bookings(session: AsyncSession, *, cycle_id: int, user_id: str) -> list[RecSlotBooking]:
    rows = await session.execute(
        select(RecSlotBooking)
        .where(RecSlotBooking.cycle_id == cycle_id, RecSlotBooking.user_id == user_id)
        .order_by(RecSlotBooking.booked_at.asc())
    )
    return list(rows.scalars().all())


async def list_slots(session: AsyncSession, *, cycle_id: int, kind: str | None = None) -> list[RecSlot]:
    query = select(RecSlot).where(RecSlot.cycle_id == cycle_id)
    if kind:
        query = query.where(RecSlot.kind == normalize_slot_kind(kind))
    rows = await session.execute(query.order_by(RecSlot.start_time.asc(), RecSlot.slot_id.asc()))
    return list(rows.scalars().all())


def _build_slot(cycle_id: int, payload: SlotCreate) -> RecSlot:
    start = to_utc_naive(payload.start_time)
    end = to_utc_naive(payload.end_time) if payload.end_time else start + timedelta(minutes=payload.duration_minutes)
    return RecSlot(
        cycle_id=cycle_id,
        kind=normalize_slot_kind(payload.kind),
        host_name=payload.host_name.strip(),
        host_email=(payload.host_email or "").strip().lower() or None,
        start_time=start,
        end_time=end,
        duration_minutes=int((end - start).total_seconds() // 60),
        location=payload.location,
        meeting_url=payload.meeting_url,
        for_track=_slot_track(payload.for_track),
        max_bookings=payload.max_bookings,
        booked_count=0,
        notes=payload.notes,
    )


async def create_slots(
    session: AsyncSession, *, cycle_id: int, payloads: list[SlotCreate], actor_email: str | None = None
) -> list[RecSlot]:
    await get_cycle(session, cycle_id)
    slots = [_build_slot(cycle_id, payload) for payload in payloads]
    session.add_all(slots)
    await session.flush()
    event = await log_activity(
        session,
        entity_type="slot",
        entity_id=slots[0].slot_id if len(slots) == 1 else None,
        action_type="slots_created",
        cycle_id=cycle_id,
        performed_by_email=actor_email,
        meta_json={"count": len(slots)},
    )
    await session.commit()
    await publish_activity(event)
    return slots


async def update_slot(
    session: AsyncSession, *, slot_id: int, payload: SlotUpdate, actor_email: str | None = None
) -> RecSlot:
    slot = await get_slot(session, slot_id)
    updates = payload.model_dump(exclude_unset=True)

    if payload.max_bookings is not None and payload.max_bookings != slot.max_bookings:
        # Guarded so a booking that lands concurrently cannot be stranded above capacity.
        resized = await session.execute(
            update(RecSlot)
            .where(RecSlot.slot_id == slot_id, RecSlot.booked_count <= payload.max_bookings)
            .values(max_bookings=payload.max_bookings)
            .execution_options(synchronize_session=False)
        )
        if resized.rowcount != 1:
            await session.rollback()
            raise Conflict("Capacity cannot drop below the number of existing bookings")

    for field in ("host_name", "host_email", "location", "meeting_url", "notes"):
        if field in updates:
            setattr(slot, field, updates[field])
    if "for_track" in updates:
        slot.for_track = _slot_track(updates["for_track"])
    if payload.start_time is not None:
        slot.start_time = to_utc_naive(payload.start_time)
    if payload.end_time is not None:
        slot.end_time = to_utc_naive(payload.end_time)
    if slot.end_time <= slot.start_time:
        await session.rollback()
        raise ValidationError("end_time must be after start_time")
    slot.duration_minutes = int((slot.end_time - slot.start_time).total_seconds() // 60)
    slot.updated_at = utc_now_naive()
    await session.commit()
    await session.refresh(slot)
    return slot


async def delete_slot(session: AsyncSession, *, slot_id: int, actor_email: str | None = None) -> None:
    slot = await get_slot(session, slot_id)
    bookings = (
        await session.execute(select(func.count()).select_from(RecSlotBooking).where(RecSlotBooking.slot_id == slot_id))
    ).scalar_one()
    if bookings:
        raise Conflict("Slot has bookings and cannot be deleted")
    await session.delete(slot)
    event = await log_activity(
        session,
        entity_type="slot",
        entity_id=slot_id,
        action_type="slot_deleted",
        cycle_id=slot.cycle_id,
        performed_by_email=actor_email,
    )
    await session.commit()
    await publish_activity(event)


async def list_slot_bookings(session: AsyncSession, *, slot_id: int) -> list[RecSlotBooking]:
    await get_slot(session, slot_id)
    rows = await session.execute(
        select(RecSlotBooking).where(RecSlotBooking.slot_id == slot_id).order_by(RecSlotBooking.booked_at.asc())
    )
    return list(rows.scalars().all())


async def update_booking_status(
    session: AsyncSession, *, booking_id: int, status: str, actor_email: str | None = None
) -> RecSlotBooking:
    booking = await session.get(RecSlotBooking, booking_id)
    if not booking:
        raise NotFound("Booking not found")
    previous = booking.status
    booking.status = status
    booking.updated_at = utc_now_naive()
    event = await log_activity(
        session,
        entity_type="booking",
        entity_id=booking_id,
        action_type="booking_status_changed",
        cycle_id=booking.cycle_id,
        from_status=previous,
        to_status=status,
        performed_by_email=actor_email,
    )
    await session.commit()
    await publish_activity(event)
    return booking


async def complete_past_bookings(session: AsyncSession, *, now: datetime | None = None) -> int:
    current = now or utc_now_naive()
    ended = select(RecSlot.slot_id).where(RecSlot.end_time <= current).scalar_subquery()
    result = await session.execute(
        update(RecSlotBooking)
        .where(RecSlotBooking.status == "confirmed", RecSlotBooking.slot_id.in_(ended))
        .values(status="completed", updated_at=current)
        .execution_options(synchronize_session=False)
    )
    await session.commit()
    return result.rowcount or 0
