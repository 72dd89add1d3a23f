from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api import deps
from app.core.auth import require_admin
from app.core.errors import NotFound
from app.schemas.phase import (
    ApplyCutoffRequest,
    ApplyCutoffResponse,
    PhaseCompleteness,
    PhaseConfigCreate,
    PhaseConfigOut,
    PhaseConfigUpdate,
    PhaseDecisionOut,
    PhaseRankingOut,
    RevertPhaseOut,
)
from app.schemas.user import UserContext
from app.services import cutoffs as cutoff_service
from app.services import phase_configs as phase_service
from app.services import ranking as ranking_service

router = APIRouter(prefix="/api/admin/recruitment/cycles/{cycle_id}/phases", tags=["phases"])


@router.get("/configs", response_model=list[PhaseConfigOut])
async def list_configs(
    cycle_id: int,
    session: AsyncSession = Depends(deps.get_db_session),
    _user: UserContext = Depends(require_admin()),
):
    return await phase_service.list_phase_configs(session, cycle_id)


@router.post("/configs", response_model=PhaseConfigOut, status_code=status.HTTP_201_CREATED)
async def create_config(
    cycle_id: int,
    payload: PhaseConfigCreate,
    session: AsyncSession = Depends(deps.get_db_session),
    user: UserContext = Depends(require_admin()),
):
    return await phase_service.create_phase_config(
        session, cycle_id=cycle_id, payload=payload, actor_email=str(user.email)
    )


@router.put("/configs/{phase_config_id}", response_model=PhaseConfigOut)
async def update_config(
    cycle_id: int,
    phase_config_id: int,
    payload: PhaseConfigUpdate,
    session: AsyncSession = Depends(deps.get_db_session),
    user: UserContext = Depends(require_admin()),
):
    config = await phase_service.get_phase_config(session, phase_config_id)
    if config.cycle_id != cycle_id:
        raise NotFound("Phase config not found")
    return await phase_service.update_phase_config(session, phase_config_id, payload, actor_email=str(user.email))


@router.post("/initialize", response_model=list[PhaseConfigOut])
async def initialize_configs(
    cycle_id: int,
    session: AsyncSession = Depends(deps.get_db_session),
    _user: UserContext = Depends(require_admin()),
):
    await phase_service.initialize_phase_configs(session, cycle_id)
    return await phase_service.list_phase_configs(session, cycle_id)


@router.post("/cutoff", response_model=ApplyCutoffResponse)
async def apply_cutoff(
    cycle_id: int,
    payload: ApplyCutoffRequest,
    session: AsyncSession = Depends(deps.get_db_session),
    user: UserContext = Depends(require_admin()),
):
    result = await cutoff_service.apply_cutoff(
        session,
        cycle_id=cycle_id,
        phase=payload.phase,
        track=payload.track,
        criteria=payload.cutoff_criteria,
        overrides=payload.manual_overrides,
        actor_email=str(user.email),
        ranking_version=payload.ranking_version,
        finalize_after=payload.finalize_after,
    )
    return ApplyCutoffResponse(
        ranking_id=result.ranking_id,
        ranking_version=result.ranking_version,
        advanced=result.advanced,
        rejected=result.rejected,
    )


@router.get("/{phase}/completeness", response_model=PhaseCompleteness)
async def completeness(
    cycle_id: int,
    phase: str,
    track: str | None = Query(default=None),
    session: AsyncSession = Depends(deps.get_db_session),
    _user: UserContext = Depends(require_admin()),
):
    return await phase_service.get_phase_completeness(session, cycle_id=cycle_id, phase=phase, track=track)


@router.post("/{phase}/finalize", response_model=PhaseConfigOut)
async def finalize(
    cycle_id: int,
    phase: str,
    track: str | None = Query(default=None),
    session: AsyncSession = Depends(deps.get_db_session),
    user: UserContext = Depends(require_admin()),
):
    return await phase_service.finalize_phase(
        session, cycle_id=cycle_id, phase=phase, track=track, actor_email=str(user.email)
    )


@router.post("/{phase}/unlock", response_model=PhaseConfigOut)
async def unlock(
    cycle_id: int,
    phase: str,
    track: str | None = Query(default=None),
    session: AsyncSession = Depends(deps.get_db_session),
    user: UserContext = Depends(require_admin()),
):
    return await phase_service.unlock_phase(
        session, cycle_id=cycle_id, phase=phase, track=track, actor_email=str(user.email)
    )


@router.post("/{phase}/revert", response_model=RevertPhaseOut)
async def revert(
    cycle_id: int,
    phase: str,
    track: str | None = Query(default=None),
    session: AsyncSession = Depends(deps.get_db_session),
    user: UserContext = Depends(require_admin()),
):
    reverted = await phase_service.revert_phase(
        session, cycle_id=cycle_id, phase=phase, track=track, actor_email=str(user.email)
    )
    return RevertPhaseOut(reverted=reverted)


@router.post("/{phase}/rankings", response_model=PhaseRankingOut, status_code=status.HTTP_201_CREATED)
async def generate_ranking(
    cycle_id: int,
    phase: str,
    track: str | None = Query(default=None),
    session: AsyncSession = Depends(deps.get_db_session),
    _user: UserContext = Depends(require_admin()),
):
    return await ranking_service.generate_phase_ranking(session, cycle_id=cycle_id, phase=phase, track=track)


@router.get("/{phase}/rankings/latest", response_model=PhaseRankingOut)
async def latest_ranking(
    cycle_id: int,
    phase: str,
    track: str | None = Query(default=None),
    session: AsyncSession = Depends(deps.get_db_session),
    _user: UserContext = Depends(require_admin()),
):
    ranking = await ranking_service.get_latest_phase_ranking(session, cycle_id=cycle_id, phase=phase, track=track)
    if ranking is None:
        raise NotFound("No ranking generated yet")
    return ranking


@router.get("/{phase}/rankings/finalized", response_model=PhaseRankingOut)
async def finalized_ranking(
    cycle_id: int,
    phase: str,
    track: str | None = Query(default=None),
    session: AsyncSession = Depends(deps.get_db_session),
    _user: UserContext = Depends(require_admin()),
):
    ranking = await ranking_service.get_finalized_phase_ranking(session, cycle_id=cycle_id, phase=phase, track=track)
    if ranking is None:
        raise NotFound("No finalized ranking")
    return ranking


@router.get("/{phase}/decisions", response_model=list[PhaseDecisionOut])
async def decisions(
    cycle_id: int,
    phase: str,
    track: str | None = Query(default=None),
    session: AsyncSession = Depends(deps.get_db_session),
    _user: UserContext = Depends(require_admin()),
):
    return await cutoff_service.get_phase_decisions(session, cycle_id=cycle_id, phase=phase, track=track)
