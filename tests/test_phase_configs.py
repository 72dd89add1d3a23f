import pytest
from sqlalchemy import func, select

from app.core.errors import Conflict, ValidationError
from app.models.phase import RecPhaseConfig
from app.models.application import RecApplication
from app.schemas.phase import PhaseConfigCreate, PhaseConfigUpdate, ScoringCategory
from app.schemas.review import ReviewUpsert
from app.services import phase_configs as phase_service
from app.services import reviews as review_service

from conftest import admin_user, make_cycle, make_user


async def _application(session, cycle, email, track="technical", stage="submitted"):
    application = RecApplication(cycle_id=cycle.cycle_id, user_id=email, email=email, track=track, stage=stage)
    session.add(application)
    await session.commit()
    return application


async def test_duplicate_phase_config_is_conflict(db_session):
    cycle = await make_cycle(db_session)
    payload = PhaseConfigCreate(phase="application", track="technical")
    created = await phase_service.create_phase_config(db_session, cycle_id=cycle.cycle_id, payload=payload)
    assert created.scoring_categories == phase_service.DEFAULT_SCORING_CATEGORIES["application"]

    with pytest.raises(Conflict):
        await phase_service.create_phase_config(
            db_session,
            cycle_id=cycle.cycle_id,
            payload=PhaseConfigCreate(phase="application", track="technical", min_reviewers_required=5),
        )
    rows = (await db_session.execute(select(RecPhaseConfig))).scalars().all()
    assert len(rows) == 1
    assert rows[0].min_reviewers_required == 2


async def test_unknown_phase_is_rejected(db_session):
    cycle = await make_cycle(db_session)
    with pytest.raises(ValidationError):
        await phase_service.create_phase_config(
            db_session, cycle_id=cycle.cycle_id, payload=PhaseConfigCreate(phase="final_round")
        )


async def test_track_config_falls_back_to_shared(db_session):
    cycle = await make_cycle(db_session)
    await phase_service.initialize_phase_configs(db_session, cycle.cycle_id)
    shared = await phase_service.resolve_phase_config(
        db_session, cycle_id=cycle.cycle_id, phase="application", track="business"
    )
    assert shared.track == "both"

    await phase_service.create_phase_config(
        db_session, cycle_id=cycle.cycle_id, payload=PhaseConfigCreate(phase="application", track="business")
    )
    specific = await phase_service.resolve_phase_config(
        db_session, cycle_id=cycle.cycle_id, phase="application", track="business"
    )
    assert specific.track == "business"

    again = await phase_service.initialize_phase_configs(db_session, cycle.cycle_id)
    assert again == []
    total = (await db_session.execute(select(func.count()).select_from(RecPhaseConfig))).scalar_one()
    assert total == 4


async def test_finalized_phase_blocks_reviews_and_edits(db_session):
    cycle = await make_cycle(db_session)
    config = await phase_service.create_phase_config(
        db_session, cycle_id=cycle.cycle_id, payload=PhaseConfigCreate(phase="application")
    )
    application = await _application(db_session, cycle, "a@umich.edu")
    await phase_service.finalize_phase(
        db_session, cycle_id=cycle.cycle_id, phase="application", track=None, actor_email="admin@umich.edu"
    )

    with pytest.raises(Conflict):
        await review_service.upsert_phase_review(
            db_session,
            payload=ReviewUpsert(application_id=application.application_id, phase="application", scores={"overall": 4}),
            reviewer=admin_user(),
        )
    with pytest.raises(Conflict):
        await phase_service.update_phase_config(
            db_session, config.phase_config_id, PhaseConfigUpdate(min_reviewers_required=3)
        )

    unlocked = await phase_service.unlock_phase(
        db_session, cycle_id=cycle.cycle_id, phase="application", track=None, actor_email="admin@umich.edu"
    )
    assert unlocked.status == "in_progress"
    assert unlocked.finalized_at is None


async def test_review_scores_are_bounded_by_categories(db_session):
    cycle = await make_cycle(db_session)
    await phase_service.create_phase_config(
        db_session,
        cycle_id=cycle.cycle_id,
        payload=PhaseConfigCreate(
            phase="application",
            scoring_categories=[ScoringCategory(key="overall", label="Overall", weight=1)],
        ),
    )
    application = await _application(db_session, cycle, "a@umich.edu")

    with pytest.raises(ValidationError):
        await review_service.upsert_phase_review(
            db_session,
            payload=ReviewUpsert(application_id=application.application_id, phase="application", scores={"overall": 7}),
            reviewer=admin_user(),
        )
    with pytest.raises(ValidationError):
        await review_service.upsert_phase_review(
            db_session,
            payload=ReviewUpsert(application_id=application.application_id, phase="application", scores={"vibes": 3}),
            reviewer=admin_user(),
        )


async def test_one_review_per_reviewer_and_summary(db_session):
    cycle = await make_cycle(db_session)
    await phase_service.initialize_phase_configs(db_session, cycle.cycle_id)
    application = await _application(db_session, cycle, "a@umich.edu")
    assert await review_service.get_phase_review_summary(
        db_session, application_id=application.application_id, phase="application"
    ) is None

    first = make_user("r1@umich.edu", name="Reviewer One")
    second = make_user("r2@umich.edu", name="Reviewer Two")
    for reviewer, score, rec in ((first, 3, "hold"), (first, 5, "advance"), (second, 3, "advance")):
        await review_service.upsert_phase_review(
            db_session,
            payload=ReviewUpsert(
                application_id=application.application_id,
                phase="application",
                scores={"overall": score},
                recommendation=rec,
                referral_signal="referral" if reviewer is second else "neutral",
            ),
            reviewer=reviewer,
        )

    reviews = await review_service.list_reviews(db_session, application_id=application.application_id)
    assert len(reviews) == 2

    summary = await review_service.get_phase_review_summary(
        db_session, application_id=application.application_id, phase="application"
    )
    assert summary.review_count == 2
    assert summary.avg_score == 4.0
    assert summary.recommendations.advance == 2
    assert summary.referrals.referral == 1
    assert sorted(summary.reviewers) == ["r1@umich.edu", "r2@umich.edu"]


async def test_completeness_counts_fully_reviewed(db_session):
    cycle = await make_cycle(db_session)
    await phase_service.create_phase_config(
        db_session,
        cycle_id=cycle.cycle_id,
        payload=PhaseConfigCreate(phase="application", min_reviewers_required=2),
    )
    first = await _application(db_session, cycle, "a@umich.edu")
    await _application(db_session, cycle, "b@umich.edu")
    await _application(db_session, cycle, "c@umich.edu", stage="draft")
    for email in ("r1@umich.edu", "r2@umich.edu"):
        await review_service.upsert_phase_review(
            db_session,
            payload=ReviewUpsert(application_id=first.application_id, phase="application", scores={"overall": 4}),
            reviewer=make_user(email),
        )

    completeness = await phase_service.get_phase_completeness(db_session, cycle_id=cycle.cycle_id, phase="application")
    assert completeness.total_applicants == 2
    assert completeness.applicants_with_reviews == 1
    assert completeness.applicants_fully_reviewed == 1
    assert [item.percentage for item in completeness.reviewer_completion] == [50.0, 50.0]
