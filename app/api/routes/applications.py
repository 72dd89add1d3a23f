from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.api import deps
from app.core.auth import require_admin
from app.core.tracks import SLOT_COFFEE_CHAT
from app.models.cycle import RecCycle
from app.models.slot import RecSlotBooking
from app.schemas.application import (
    ApplicationAdminOut,
    ApplicationDetail,
    ApplicationDraftIn,
    ApplicationListItem,
    ApplicationOut,
    BulkStageOut,
    BulkStageRequest,
    NotesUpdate,
    StageTransitionOut,
    StageTransitionRequest,
)
from app.schemas.cycle import CycleOut
from app.schemas.portal import PortalDashboard
from app.schemas.portal_event import PortalEventOut, RsvpOut
from app.schemas.question import QuestionSetOut
from app.schemas.review import ReviewOut
from app.schemas.slot import BookingOut, SlotOut
from app.schemas.user import UserContext
from app.services import applications as application_service
from app.services import portal_events as event_service
from app.services import questions as question_service
from app.services import reviews as review_service
from app.services import slots as slot_service

router = APIRouter(prefix="/api/recruitment", tags=["recruitment"])
admin_router = APIRouter(prefix="/api/admin/recruitment/applications", tags=["applications"])


@router.get("/application", response_model=ApplicationOut | None)
async def get_my_application(
    cycle: RecCycle = Depends(deps.get_active_cycle),
    session: AsyncSession = Depends(deps.get_db_session),
    user: UserContext = Depends(deps.get_user),
):
    return await application_service.get_my_application(session, cycle_id=cycle.cycle_id, user_id=user.user_id)


@router.put("/application", response_model=ApplicationOut)
async def save_draft(
    payload: ApplicationDraftIn,
    cycle: RecCycle = Depends(deps.get_active_cycle),
    session: AsyncSession = Depends(deps.get_db_session),
    user: UserContext = Depends(deps.get_user),
):
    return await application_service.save_draft(session, cycle=cycle, user=user, payload=payload)


@router.post("/application/submit", response_model=ApplicationOut)
async def submit_application(
    cycle: RecCycle = Depends(deps.get_active_cycle),
    session: AsyncSession = Depends(deps.get_db_session),
    user: UserContext = Depends(deps.get_user),
):
    return await application_service.submit_application(session, cycle=cycle, user=user)


@router.get("/portal", response_model=PortalDashboard)
async def portal_dashboard(
    cycle: RecCycle = Depends(deps.get_active_cycle),
    session: AsyncSession = Depends(deps.get_db_session),
    user: UserContext = Depends(deps.get_user),
):
    application = await application_service.get_my_application(session, cycle_id=cycle.cycle_id, user_id=user.user_id)
    questions = []
    if application is not None:
        questions = await question_service.get_questions_by_cycle(session, cycle.cycle_id, application.track)
    track = application.track if application else None
    available = list(await slot_service.get_available_slots(session, cycle_id=cycle.cycle_id, kind=SLOT_COFFEE_CHAT, track=track))
    if application is not None and application.stage in ("interview_round1", "interview_round2"):
        available.extend(
            await slot_service.get_available_slots(session, cycle_id=cycle.cycle_id, kind=application.stage, track=track)
        )
    bookings = await slot_service.list_user_bookings(session, cycle_id=cycle.cycle_id, user_id=user.user_id)
    events = await event_service.list_events(session, cycle_id=cycle.cycle_id, upcoming_only=True)
    rsvps = await event_service.list_user_rsvps(session, cycle_id=cycle.cycle_id, user_id=user.user_id)
    return PortalDashboard(
        active_cycle=CycleOut.model_validate(cycle),
        application=ApplicationOut.model_validate(application) if application else None,
        questions=[QuestionSetOut.model_validate(item) for item in questions],
        available_slots=[SlotOut.model_validate(item) for item in available],
        my_bookings=[BookingOut.model_validate(item) for item in bookings],
        upcoming_events=[PortalEventOut.model_validate(item) for item in events],
        my_rsvps=[RsvpOut.model_validate(item) for item in rsvps],
    )


@admin_router.get("", response_model=list[ApplicationListItem])
async def list_applications(
    cycle_id: int = Query(...),
    stage: list[str] | None = Query(default=None),
    track: str | None = Query(default=None),
    session: AsyncSession = Depends(deps.get_db_session),
    _user: UserContext = Depends(require_admin()),
):
    return await application_service.list_applications(session, cycle_id=cycle_id, stages=stage, track=track)


@admin_router.get("/stage-counts", response_model=dict[str, int])
async def stage_counts(
    cycle_id: int = Query(...),
    session: AsyncSession = Depends(deps.get_db_session),
    _user: UserContext = Depends(require_admin()),
):
    return await application_service.count_by_stage(session, cycle_id=cycle_id)


@admin_router.post("/bulk-stage", response_model=BulkStageOut)
async def bulk_stage(
    payload: BulkStageRequest,
    session: AsyncSession = Depends(deps.get_db_session),
    user: UserContext = Depends(require_admin()),
):
    updated = await application_service.bulk_update_stages(
        session,
        application_ids=payload.application_ids,
        to_stage=payload.stage,
        actor_email=str(user.email),
        reason=payload.reason,
    )
    return BulkStageOut(updated=updated)


@admin_router.get("/{application_id}", response_model=ApplicationDetail)
async def get_application(
    application_id: int,
    session: AsyncSession = Depends(deps.get_db_session),
    _user: UserContext = Depends(require_admin()),
):
    application = await application_service.get_application(session, application_id)
    bookings = (
        await session.execute(
            select(RecSlotBooking)
            .where(RecSlotBooking.application_id == application_id)
            .order_by(RecSlotBooking.booked_at.asc())
        )
    ).scalars().all()
    return ApplicationDetail(
        application=ApplicationAdminOut.model_validate(application),
        reviews=[ReviewOut.model_validate(item) for item in await review_service.list_reviews(session, application_id=application_id)],
        bookings=[BookingOut.model_validate(item) for item in bookings],
    )


@admin_router.post("/{application_id}/stage", response_model=StageTransitionOut)
async def change_stage(
    application_id: int,
    payload: StageTransitionRequest,
    session: AsyncSession = Depends(deps.get_db_session),
    user: UserContext = Depends(require_admin()),
):
    result = await application_service.transition_stage(
        session,
        application_id=application_id,
        to_stage=payload.to_stage,
        override=payload.override,
        actor_email=str(user.email),
        reason=payload.reason,
    )
    return StageTransitionOut(
        application_id=result.application_id,
        from_stage=result.from_stage,
        to_stage=result.to_stage,
        changed=result.changed,
    )


@admin_router.put("/{application_id}/notes", response_model=ApplicationAdminOut)
async def update_notes(
    application_id: int,
    payload: NotesUpdate,
    session: AsyncSession = Depends(deps.get_db_session),
    user: UserContext = Depends(require_admin()),
):
    return await application_service.update_notes(
        session, application_id=application_id, notes=payload.admin_notes, actor_email=str(user.email)
    )


@admin_router.delete("/{application_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_application(
    application_id: int,
    session: AsyncSession = Depends(deps.get_db_session),
    user: UserContext = Depends(require_admin()),
):
    await application_service.delete_application(session, application_id=application_id, actor_email=str(user.email))
    return Response(status_code=status.HTTP_204_NO_CONTENT)
