from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.api import deps
from app.core.auth import require_admin
from app.schemas.content import (
    MemberLevelsContent,
    MemberLevelsUpdate,
    RecruitmentTimelineContent,
    RecruitmentTimelineUpdate,
)
from app.schemas.user import UserContext
from app.services.content_store import MEMBER_LEVELS, RECRUITMENT_TIMELINE, ContentStore

router = APIRouter(prefix="/api/recruitment", tags=["content"])
admin_router = APIRouter(prefix="/api/admin/recruitment/content", tags=["content"])


@router.get("/member-levels", response_model=MemberLevelsContent)
async def member_levels(session: AsyncSession = Depends(deps.get_db_session)):
    return await ContentStore(session).get(MEMBER_LEVELS)


@router.get("/timeline", response_model=RecruitmentTimelineContent)
async def recruitment_timeline(session: AsyncSession = Depends(deps.get_db_session)):
    return await ContentStore(session).get(RECRUITMENT_TIMELINE)


@admin_router.put("/member-levels", response_model=MemberLevelsContent)
async def update_member_levels(
    payload: MemberLevelsUpdate,
    session: AsyncSession = Depends(deps.get_db_session),
    user: UserContext = Depends(require_admin()),
):
    return await ContentStore(session).update(
        MEMBER_LEVELS, payload.model_dump(exclude_unset=True), actor_email=str(user.email)
    )


@admin_router.put("/timeline", response_model=RecruitmentTimelineContent)
async def update_recruitment_timeline(
    payload: RecruitmentTimelineUpdate,
    session: AsyncSession = Depends(deps.get_db_session),
    user: UserContext = Depends(require_admin()),
):
    return await ContentStore(session).update(
        RECRUITMENT_TIMELINE, payload.model_dump(exclude_unset=True), actor_email=str(user.email)
    )
