from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.api import deps
from app.core.auth import require_admin
from app.core.errors import NotFound
from app.schemas.review import PhaseReviewSummary, ReviewOut, ReviewUpsert
from app.schemas.user import UserContext
from app.services import reviews as review_service

router = APIRouter(prefix="/api/admin/recruitment/reviews", tags=["reviews"])


@router.put("", response_model=ReviewOut)
async def upsert_review(
    payload: ReviewUpsert,
    session: AsyncSession = Depends(deps.get_db_session),
    user: UserContext = Depends(require_admin()),
):
    return await review_service.upsert_phase_review(session, payload=payload, reviewer=user)


@router.get("/applications/{application_id}", response_model=list[ReviewOut])
async def list_reviews(
    application_id: int,
    phase: str | None = Query(default=None),
    session: AsyncSession = Depends(deps.get_db_session),
    _user: UserContext = Depends(require_admin()),
):
    return await review_service.list_reviews(session, application_id=application_id, phase=phase)


@router.get("/applications/{application_id}/summary", response_model=PhaseReviewSummary)
async def review_summary(
    application_id: int,
    phase: str = Query(...),
    session: AsyncSession = Depends(deps.get_db_session),
    _user: UserContext = Depends(require_admin()),
):
    summary = await review_service.get_phase_review_summary(session, application_id=application_id, phase=phase)
    if summary is None:
        raise NotFound("No reviews for this phase yet")
    return summary
