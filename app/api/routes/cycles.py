from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api import deps
from app.core.auth import require_admin
from app.schemas.cycle import CycleCreate, CycleOut, CycleUpdate, PublicCycleInfo
from app.schemas.user import UserContext
from app.services import cycles as cycle_service

router = APIRouter(prefix="/api/admin/recruitment/cycles", tags=["cycles"])
public_router = APIRouter(prefix="/api/public", tags=["public"])


@router.get("", response_model=list[CycleOut])
async def list_cycles(
    session: AsyncSession = Depends(deps.get_db_session),
    _user: UserContext = Depends(require_admin()),
):
    return await cycle_service.list_cycles(session)


@router.post("", response_model=CycleOut, status_code=status.HTTP_201_CREATED)
async def create_cycle(
    payload: CycleCreate,
    session: AsyncSession = Depends(deps.get_db_session),
    user: UserContext = Depends(require_admin()),
):
    return await cycle_service.create_cycle(session, payload, actor_email=str(user.email))


@router.get("/{cycle_id}", response_model=CycleOut)
async def get_cycle(
    cycle_id: int,
    session: AsyncSession = Depends(deps.get_db_session),
    _user: UserContext = Depends(require_admin()),
):
    return await cycle_service.get_cycle(session, cycle_id)


@router.put("/{cycle_id}", response_model=CycleOut)
async def update_cycle(
    cycle_id: int,
    payload: CycleUpdate,
    session: AsyncSession = Depends(deps.get_db_session),
    user: UserContext = Depends(require_admin()),
):
    return await cycle_service.update_cycle(session, cycle_id, payload, actor_email=str(user.email))


@router.post("/{cycle_id}/activate", response_model=CycleOut)
async def activate_cycle(
    cycle_id: int,
    session: AsyncSession = Depends(deps.get_db_session),
    user: UserContext = Depends(require_admin()),
):
    return await cycle_service.set_active_cycle(session, cycle_id, actor_email=str(user.email))


@router.delete("/{cycle_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_cycle(
    cycle_id: int,
    session: AsyncSession = Depends(deps.get_db_session),
    user: UserContext = Depends(require_admin()),
):
    await cycle_service.delete_cycle(session, cycle_id, actor_email=str(user.email))
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@public_router.get("/recruitment-cycle", response_model=PublicCycleInfo)
async def public_cycle(session: AsyncSession = Depends(deps.get_db_session)):
    cycle = await cycle_service.get_active_cycle(session)
    if cycle:
        return PublicCycleInfo(
            is_active=True,
            cycle_name=cycle.name,
            portal_open_at=cycle.portal_open_at,
            portal_close_at=cycle.portal_close_at,
            application_due_at=cycle.application_due_at,
            portal_url="/portal",
        )
    upcoming = await cycle_service.get_upcoming_cycle(session)
    if upcoming:
        return PublicCycleInfo(
            is_active=False,
            is_upcoming=True,
            cycle_name=upcoming.name,
            portal_open_at=upcoming.portal_open_at,
            portal_close_at=upcoming.portal_close_at,
            application_due_at=upcoming.application_due_at,
        )
    return PublicCycleInfo(is_active=False, message="No active recruitment cycle")
