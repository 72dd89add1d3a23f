from datetime import timedelta

import pytest
from sqlalchemy import select, update

from app.core.datetime_utils import utc_now_naive
from app.core.errors import Conflict, ValidationError
from app.models.application import RecApplication
from app.models.phase import RecPhaseDecision, RecPhaseRanking
from app.schemas.phase import CutoffCriteria, ManualOverride, PhaseConfigCreate, ScoringCategory
from app.schemas.review import ReviewUpsert
from app.services import cutoffs as cutoff_service
from app.services import phase_configs as phase_service
from app.services import ranking as ranking_service
from app.services import reviews as review_service

from conftest import make_cycle, make_user

ADMIN = "admin@umich.edu"


async def _ranked_cycle(session, scores: dict[str, float]):
    """A cycle with one submitted application per email, each reviewed once with the given overall score."""
    cycle = await make_cycle(session)
    await phase_service.create_phase_config(
        session,
        cycle_id=cycle.cycle_id,
        payload=PhaseConfigCreate(
            phase="application", scoring_categories=[ScoringCategory(key="overall", label="Overall", weight=1)]
        ),
    )
    submitted_at = utc_now_naive() - timedelta(days=1)
    applications = {}
    for index, (email, score) in enumerate(scores.items()):
        application = RecApplication(
            cycle_id=cycle.cycle_id,
            user_id=email,
            email=email,
            track="technical",
            stage="submitted",
            submitted_at=submitted_at + timedelta(minutes=index),
        )
        session.add(application)
        await session.commit()
        await review_service.upsert_phase_review(
            session,
            payload=ReviewUpsert(application_id=application.application_id, phase="application", scores={"overall": score}),
            reviewer=make_user("reviewer@umich.edu"),
        )
        applications[email] = application
    return cycle, applications


async def _stages(session, cycle_id: int) -> dict[str, str]:
    rows = await session.execute(
        select(RecApplication.email, RecApplication.stage).where(RecApplication.cycle_id == cycle_id)
    )
    return dict(rows.all())


async def test_top_n_cutoff_moves_everyone_once(db_session):
    cycle, _ = await _ranked_cycle(db_session, {"a@umich.edu": 4.5, "b@umich.edu": 3.0, "c@umich.edu": 5.0})
    result = await cutoff_service.apply_cutoff(
        db_session,
        cycle_id=cycle.cycle_id,
        phase="application",
        track=None,
        criteria=CutoffCriteria(type="top_n", top_n=2),
        overrides=[],
        actor_email=ADMIN,
    )
    assert len(result.advanced) == 2
    assert len(result.rejected) == 1
    assert await _stages(db_session, cycle.cycle_id) == {
        "a@umich.edu": "interview_round1",
        "b@umich.edu": "rejected",
        "c@umich.edu": "interview_round1",
    }

    finalized = await ranking_service.get_finalized_phase_ranking(db_session, cycle_id=cycle.cycle_id, phase="application")
    assert finalized.ranking_id == result.ranking_id
    assert [entry["applicant_email"] for entry in finalized.rankings] == ["c@umich.edu", "a@umich.edu", "b@umich.edu"]
    assert [entry["decision"] for entry in finalized.rankings] == ["advance", "advance", "reject"]

    decisions = await cutoff_service.get_phase_decisions(db_session, cycle_id=cycle.cycle_id, phase="application")
    assert len(decisions) == 3

    with pytest.raises(Conflict):
        await cutoff_service.apply_cutoff(
            db_session,
            cycle_id=cycle.cycle_id,
            phase="application",
            track=None,
            criteria=CutoffCriteria(type="top_n", top_n=3),
            overrides=[],
            actor_email=ADMIN,
        )


async def test_min_score_with_manual_override(db_session):
    cycle, apps = await _ranked_cycle(db_session, {"a@umich.edu": 4.0, "b@umich.edu": 2.0})
    result = await cutoff_service.apply_cutoff(
        db_session,
        cycle_id=cycle.cycle_id,
        phase="application",
        track="both",
        criteria=CutoffCriteria(type="min_score", min_score=3.5),
        overrides=[ManualOverride(application_id=apps["b@umich.edu"].application_id, action="advance", reason="strong referral")],
        actor_email=ADMIN,
    )
    assert sorted(result.advanced) == sorted(app.application_id for app in apps.values())
    decision = (
        await db_session.execute(
            select(RecPhaseDecision).where(RecPhaseDecision.application_id == apps["b@umich.edu"].application_id)
        )
    ).scalar_one()
    assert decision.action == "manual_advance"
    assert decision.reason == "strong referral"
    assert decision.previous_stage == "submitted"


async def test_stale_ranking_version_is_rejected(db_session):
    cycle, _ = await _ranked_cycle(db_session, {"a@umich.edu": 4.0})
    first = await ranking_service.generate_phase_ranking(db_session, cycle_id=cycle.cycle_id, phase="application")
    second = await ranking_service.generate_phase_ranking(db_session, cycle_id=cycle.cycle_id, phase="application")
    assert (first.version, second.version) == (1, 2)

    with pytest.raises(Conflict):
        await cutoff_service.apply_cutoff(
            db_session,
            cycle_id=cycle.cycle_id,
            phase="application",
            track=None,
            criteria=CutoffCriteria(type="top_n", top_n=1),
            overrides=[],
            actor_email=ADMIN,
            ranking_version=first.version,
        )
    assert await _stages(db_session, cycle.cycle_id) == {"a@umich.edu": "submitted"}


async def test_override_outside_ranking_changes_nothing(db_session):
    cycle, _ = await _ranked_cycle(db_session, {"a@umich.edu": 4.0, "b@umich.edu": 3.0})
    with pytest.raises(ValidationError):
        await cutoff_service.apply_cutoff(
            db_session,
            cycle_id=cycle.cycle_id,
            phase="application",
            track=None,
            criteria=CutoffCriteria(type="top_n", top_n=1),
            overrides=[ManualOverride(application_id=9999, action="advance")],
            actor_email=ADMIN,
        )
    assert set((await _stages(db_session, cycle.cycle_id)).values()) == {"submitted"}
    assert (await db_session.execute(select(RecPhaseDecision))).scalars().all() == []
    assert (await db_session.execute(select(RecPhaseRanking))).scalars().all() == []


async def test_revert_restores_entry_stage(db_session):
    cycle, apps = await _ranked_cycle(db_session, {"a@umich.edu": 4.0, "b@umich.edu": 2.0})
    await cutoff_service.apply_cutoff(
        db_session,
        cycle_id=cycle.cycle_id,
        phase="application",
        track=None,
        criteria=CutoffCriteria(type="top_n", top_n=1),
        overrides=[],
        actor_email=ADMIN,
    )
    # An application that moved on after the cutoff is left where it is.
    moved = apps["a@umich.edu"]
    moved.stage = "interview_round2"
    await db_session.commit()

    reverted = await phase_service.revert_phase(
        db_session, cycle_id=cycle.cycle_id, phase="application", track=None, actor_email=ADMIN
    )
    assert reverted == 1
    assert await _stages(db_session, cycle.cycle_id) == {
        "a@umich.edu": "interview_round2",
        "b@umich.edu": "phase1_review",
    }
    config = await phase_service.require_phase_config(db_session, cycle_id=cycle.cycle_id, phase="application", track=None)
    assert config.cutoff_applied_at is None
    assert config.status == "in_progress"
    assert await cutoff_service.get_phase_decisions(db_session, cycle_id=cycle.cycle_id, phase="application") == []


def test_classify_without_overrides_when_disabled():
    rankings = [
        {"application_id": 1, "weighted_score": 4.0},
        {"application_id": 2, "weighted_score": 2.0},
    ]
    decisions = cutoff_service.classify(
        rankings,
        CutoffCriteria(type="top_n", top_n=1, include_manual_overrides=False),
        [ManualOverride(application_id=2, action="advance")],
    )
    assert decisions == {1: ("advance", None), 2: ("reject", None)}
    manual = cutoff_service.classify(rankings, CutoffCriteria(type="manual"), [ManualOverride(application_id=1, action="advance")])
    assert manual == {1: ("manual_advance", None), 2: ("reject", None)}


async def test_cutoff_finalizes_phase_and_locks_reviews(db_session):
    cycle, apps = await _ranked_cycle(db_session, {"a@umich.edu": 4.0, "b@umich.edu": 2.0})
    await cutoff_service.apply_cutoff(
        db_session,
        cycle_id=cycle.cycle_id,
        phase="application",
        track=None,
        criteria=CutoffCriteria(type="top_n", top_n=1),
        overrides=[],
        actor_email=ADMIN,
    )
    config = await phase_service.require_phase_config(db_session, cycle_id=cycle.cycle_id, phase="application", track=None)
    assert config.status == "finalized"
    assert config.finalized_by == ADMIN
    assert config.finalized_at == config.cutoff_applied_at

    with pytest.raises(Conflict):
        await review_service.upsert_phase_review(
            db_session,
            payload=ReviewUpsert(
                application_id=apps["b@umich.edu"].application_id, phase="application", scores={"overall": 5}
            ),
            reviewer=make_user("reviewer@umich.edu"),
        )


async def test_cutoff_can_leave_phase_open(db_session):
    cycle, apps = await _ranked_cycle(db_session, {"a@umich.edu": 4.0})
    await cutoff_service.apply_cutoff(
        db_session,
        cycle_id=cycle.cycle_id,
        phase="application",
        track=None,
        criteria=CutoffCriteria(type="top_n", top_n=1),
        overrides=[],
        actor_email=ADMIN,
        finalize_after=False,
    )
    config = await phase_service.require_phase_config(db_session, cycle_id=cycle.cycle_id, phase="application", track=None)
    assert config.cutoff_applied_at is not None
    assert config.status != "finalized"
    assert config.finalized_at is None


async def test_stage_change_mid_batch_aborts_whole_cutoff(db_session, monkeypatch):
    cycle, apps = await _ranked_cycle(db_session, {"a@umich.edu": 4.5, "b@umich.edu": 3.0, "c@umich.edu": 5.0})
    lowest = apps["b@umich.edu"].application_id
    real_build_ranking = cutoff_service.build_ranking

    async def build_then_withdraw(session, **kwargs):
        rankings = await real_build_ranking(session, **kwargs)
        # The last-ranked applicant withdraws after ranking, before the stage updates run.
        await session.execute(
            update(RecApplication).where(RecApplication.application_id == lowest).values(stage="withdrawn")
        )
        await session.commit()
        return rankings

    monkeypatch.setattr(cutoff_service, "build_ranking", build_then_withdraw)
    with pytest.raises(Conflict):
        await cutoff_service.apply_cutoff(
            db_session,
            cycle_id=cycle.cycle_id,
            phase="application",
            track=None,
            criteria=CutoffCriteria(type="top_n", top_n=2),
            overrides=[],
            actor_email=ADMIN,
        )

    assert await _stages(db_session, cycle.cycle_id) == {
        "a@umich.edu": "submitted",
        "b@umich.edu": "withdrawn",
        "c@umich.edu": "submitted",
    }
    assert (await db_session.execute(select(RecPhaseDecision))).scalars().all() == []
    assert (await db_session.execute(select(RecPhaseRanking))).scalars().all() == []
    config = await phase_service.require_phase_config(db_session, cycle_id=cycle.cycle_id, phase="application", track=None)
    assert config.cutoff_applied_at is None
    assert config.cutoff_ranking_id is None
    assert config.status != "finalized"
