from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.api import deps
from app.schemas.user import MeOut, UserContext
from app.services import applications as application_service
from app.services import cycles as cycle_service

router = APIRouter(prefix="/auth", tags=["auth"])


@router.get("/me", response_model=MeOut)
async def me(
    session: AsyncSession = Depends(deps.get_db_session),
    user: UserContext = Depends(deps.get_user),
):
    out = MeOut(
        user_id=user.user_id,
        email=user.email,
        roles=user.roles,
        full_name=user.full_name,
        is_admin=user.is_admin,
    )
    cycle = await cycle_service.get_active_cycle(session)
    if cycle is not None:
        out.active_cycle_id = cycle.cycle_id
        application = await application_service.get_my_application(session, cycle_id=cycle.cycle_id, user_id=user.user_id)
        if application is not None:
            out.application_stage = application.stage
    return out
