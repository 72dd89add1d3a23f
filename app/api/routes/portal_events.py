from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api import deps
from app.core.auth import require_admin
from app.models.cycle import RecCycle
from app.schemas.portal_event import (
    AttendanceSummary,
    CheckInRequest,
    PortalEventAdminOut,
    PortalEventCreate,
    PortalEventOut,
    PortalEventUpdate,
    RsvpOut,
)
from app.schemas.user import UserContext
from app.services import portal_events as event_service

router = APIRouter(prefix="/api/recruitment/events", tags=["recruitment"])
admin_router = APIRouter(prefix="/api/admin/recruitment", tags=["events"])


@router.get("", response_model=list[PortalEventOut])
async def list_events(
    cycle: RecCycle = Depends(deps.get_active_cycle),
    session: AsyncSession = Depends(deps.get_db_session),
    _user: UserContext = Depends(deps.get_user),
):
    return await event_service.list_events(session, cycle_id=cycle.cycle_id)


@router.post("/{event_id}/rsvp", response_model=RsvpOut, status_code=status.HTTP_201_CREATED)
async def rsvp(
    event_id: int,
    session: AsyncSession = Depends(deps.get_db_session),
    user: UserContext = Depends(deps.get_user),
):
    return await event_service.create_rsvp(session, event_id=event_id, user=user)


@router.delete("/{event_id}/rsvp", status_code=status.HTTP_204_NO_CONTENT)
async def cancel_rsvp(
    event_id: int,
    session: AsyncSession = Depends(deps.get_db_session),
    user: UserContext = Depends(deps.get_user),
):
    await event_service.delete_rsvp(session, event_id=event_id, user=user)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{event_id}/check-in", response_model=RsvpOut)
async def check_in(
    event_id: int,
    payload: CheckInRequest,
    session: AsyncSession = Depends(deps.get_db_session),
    user: UserContext = Depends(deps.get_user),
):
    return await event_service.check_in(session, event_id=event_id, code=payload.code, user=user)


@admin_router.get("/cycles/{cycle_id}/events", response_model=list[PortalEventAdminOut])
async def admin_list_events(
    cycle_id: int,
    session: AsyncSession = Depends(deps.get_db_session),
    _user: UserContext = Depends(require_admin()),
):
    return await event_service.list_events(session, cycle_id=cycle_id)


@admin_router.post(
    "/cycles/{cycle_id}/events", response_model=PortalEventAdminOut, status_code=status.HTTP_201_CREATED
)
async def create_event(
    cycle_id: int,
    payload: PortalEventCreate,
    session: AsyncSession = Depends(deps.get_db_session),
    user: UserContext = Depends(require_admin()),
):
    return await event_service.create_event(session, cycle_id=cycle_id, payload=payload, actor_email=str(user.email))


@admin_router.put("/events/{event_id}", response_model=PortalEventAdminOut)
async def update_event(
    event_id: int,
    payload: PortalEventUpdate,
    session: AsyncSession = Depends(deps.get_db_session),
    _user: UserContext = Depends(require_admin()),
):
    return await event_service.update_event(session, event_id=event_id, payload=payload)


@admin_router.delete("/events/{event_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_event(
    event_id: int,
    session: AsyncSession = Depends(deps.get_db_session),
    _user: UserContext = Depends(require_admin()),
):
    await event_service.delete_event(session, event_id=event_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@admin_router.get("/events/{event_id}/rsvps", response_model=list[RsvpOut])
async def event_rsvps(
    event_id: int,
    session: AsyncSession = Depends(deps.get_db_session),
    _user: UserContext = Depends(require_admin()),
):
    return await event_service.list_event_rsvps(session, event_id=event_id)


@admin_router.get("/events/{event_id}/attendance", response_model=AttendanceSummary)
async def event_attendance(
    event_id: int,
    session: AsyncSession = Depends(deps.get_db_session),
    _user: UserContext = Depends(require_admin()),
):
    await event_service.get_event(session, event_id)
    rsvps, checked_in = await event_service.attendance_counts(session, event_id=event_id)
    return AttendanceSummary(event_id=event_id, rsvp_count=rsvps, checked_in_count=checked_in)
