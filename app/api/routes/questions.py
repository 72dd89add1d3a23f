from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.api import deps
from app.core.auth import require_admin
from app.models.cycle import RecCycle
from app.schemas.question import QuestionSetOut, QuestionSetUpsert
from app.schemas.user import UserContext
from app.services import questions as question_service

router = APIRouter(prefix="/api/admin/recruitment/cycles/{cycle_id}/questions", tags=["questions"])
applicant_router = APIRouter(prefix="/api/recruitment", tags=["recruitment"])


@router.get("", response_model=list[QuestionSetOut])
async def list_question_sets(
    cycle_id: int,
    track: str | None = Query(default=None),
    session: AsyncSession = Depends(deps.get_db_session),
    _user: UserContext = Depends(require_admin()),
):
    return await question_service.get_questions_by_cycle(session, cycle_id, track)


@router.put("", response_model=QuestionSetOut)
async def upsert_question_set(
    cycle_id: int,
    payload: QuestionSetUpsert,
    session: AsyncSession = Depends(deps.get_db_session),
    _user: UserContext = Depends(require_admin()),
):
    return await question_service.upsert_questions(session, cycle_id, payload.track, payload.fields)


@applicant_router.get("/questions", response_model=list[QuestionSetOut])
async def questions_for_track(
    track: str = Query(...),
    cycle: RecCycle = Depends(deps.get_active_cycle),
    session: AsyncSession = Depends(deps.get_db_session),
    _user: UserContext = Depends(deps.get_user),
):
    return await question_service.get_questions_by_cycle(session, cycle.cycle_id, track)
