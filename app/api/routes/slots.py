from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api import deps
from app.core.auth import require_admin
from app.models.cycle import RecCycle
from app.schemas.slot import BookingCreate, BookingOut, BookingStatusUpdate, SlotBulkCreate, SlotCreate, SlotOut, SlotUpdate
from app.schemas.user import UserContext
from app.services import applications as application_service
from app.services import slots as slot_service

router = APIRouter(prefix="/api/recruitment", tags=["recruitment"])
admin_router = APIRouter(prefix="/api/admin/recruitment", tags=["slots"])


@router.get("/slots", response_model=list[SlotOut])
async def available_slots(
    kind: str = Query(...),
    cycle: RecCycle = Depends(deps.get_active_cycle),
    session: AsyncSession = Depends(deps.get_db_session),
    user: UserContext = Depends(deps.get_user),
):
    application = await application_service.get_my_application(session, cycle_id=cycle.cycle_id, user_id=user.user_id)
    return await slot_service.get_available_slots(
        session, cycle_id=cycle.cycle_id, kind=kind, track=application.track if application else None
    )


@router.get("/bookings", response_model=list[BookingOut])
async def my_bookings(
    cycle: RecCycle = Depends(deps.get_active_cycle),
    session: AsyncSession = Depends(deps.get_db_session),
    user: UserContext = Depends(deps.get_user),
):
    return await slot_service.list_user_bookings(session, cycle_id=cycle.cycle_id, user_id=user.user_id)


@router.post("/bookings", response_model=BookingOut, status_code=status.HTTP_201_CREATED)
async def book_slot(
    payload: BookingCreate,
    cycle: RecCycle = Depends(deps.get_active_cycle),
    session: AsyncSession = Depends(deps.get_db_session),
    user: UserContext = Depends(deps.get_user),
):
    return await slot_service.book_slot(session, cycle=cycle, slot_id=payload.slot_id, user=user)


@router.delete("/bookings/{booking_id}", status_code=status.HTTP_204_NO_CONTENT)
async def cancel_booking(
    booking_id: int,
    session: AsyncSession = Depends(deps.get_db_session),
    user: UserContext = Depends(deps.get_user),
):
    await slot_service.cancel_booking(session, booking_id=booking_id, user=user)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@admin_router.get("/cycles/{cycle_id}/slots", response_model=list[SlotOut])
async def list_slots(
    cycle_id: int,
    kind: str | None = Query(default=None),
    session: AsyncSession = Depends(deps.get_db_session),
    _user: UserContext = Depends(require_admin()),
):
    return await slot_service.list_slots(session, cycle_id=cycle_id, kind=kind)


@admin_router.post("/cycles/{cycle_id}/slots", response_model=SlotOut, status_code=status.HTTP_201_CREATED)
async def create_slot(
    cycle_id: int,
    payload: SlotCreate,
    session: AsyncSession = Depends(deps.get_db_session),
    user: UserContext = Depends(require_admin()),
):
    slots = await slot_service.create_slots(session, cycle_id=cycle_id, payloads=[payload], actor_email=str(user.email))
    return slots[0]


@admin_router.post("/cycles/{cycle_id}/slots/bulk", response_model=list[SlotOut], status_code=status.HTTP_201_CREATED)
async def bulk_create_slots(
    cycle_id: int,
    payload: SlotBulkCreate,
    session: AsyncSession = Depends(deps.get_db_session),
    user: UserContext = Depends(require_admin()),
):
    return await slot_service.create_slots(
        session, cycle_id=cycle_id, payloads=payload.slots, actor_email=str(user.email)
    )


@admin_router.put("/slots/{slot_id}", response_model=SlotOut)
async def update_slot(
    slot_id: int,
    payload: SlotUpdate,
    session: AsyncSession = Depends(deps.get_db_session),
    user: UserContext = Depends(require_admin()),
):
    return await slot_service.update_slot(session, slot_id=slot_id, payload=payload, actor_email=str(user.email))


@admin_router.delete("/slots/{slot_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_slot(
    slot_id: int,
    session: AsyncSession = Depends(deps.get_db_session),
    user: UserContext = Depends(require_admin()),
):
    await slot_service.delete_slot(session, slot_id=slot_id, actor_email=str(user.email))
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@admin_router.get("/slots/{slot_id}/bookings", response_model=list[BookingOut])
async def slot_bookings(
    slot_id: int,
    session: AsyncSession = Depends(deps.get_db_session),
    _user: UserContext = Depends(require_admin()),
):
    return await slot_service.list_slot_bookings(session, slot_id=slot_id)


@admin_router.put("/bookings/{booking_id}/status", response_model=BookingOut)
async def update_booking_status(
    booking_id: int,
    payload: BookingStatusUpdate,
    session: AsyncSession = Depends(deps.get_db_session),
    user: UserContext = Depends(require_admin()),
):
    return await slot_service.update_booking_status(
        session, booking_id=booking_id, status=payload.status, actor_email=str(user.email)
    )
