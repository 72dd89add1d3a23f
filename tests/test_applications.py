import asyncio
from datetime import timedelta

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from app.core.datetime_utils import utc_now_naive
from app.core.errors import NotFound, ValidationError
from app.db.base import Base
from app.models.activity import RecActivityEvent
from app.models.slot import RecSlot, RecSlotBooking
from app.schemas.application import ApplicationDraftIn
from app.schemas.question import QuestionField
from app.schemas.slot import SlotCreate
from app.services import applications as application_service
from app.services import questions as question_service
from app.services import slots as slot_service

from conftest import make_cycle, make_user


async def _submitted(session, cycle, email="applicant@umich.edu", track="technical"):
    user = make_user(email)
    await application_service.save_draft(session, cycle=cycle, user=user, payload=ApplicationDraftIn(track=track))
    return await application_service.submit_application(session, cycle=cycle, user=user)


async def test_save_draft_creates_then_updates(db_session):
    cycle = await make_cycle(db_session)
    user = make_user()
    draft = await application_service.save_draft(
        db_session, cycle=cycle, user=user, payload=ApplicationDraftIn(track="Technical", answers={"why": "AI"})
    )
    assert draft.stage == "draft"
    assert draft.track == "technical"

    again = await application_service.save_draft(
        db_session, cycle=cycle, user=user, payload=ApplicationDraftIn(track="technical", answers={"why": "Impact"})
    )
    assert again.application_id == draft.application_id
    assert again.answers == {"why": "Impact"}


async def test_draft_rejects_shared_track_and_closed_portal(db_session):
    cycle = await make_cycle(db_session)
    with pytest.raises(ValidationError):
        await application_service.save_draft(
            db_session, cycle=cycle, user=make_user(), payload=ApplicationDraftIn(track="both")
        )

    now = utc_now_naive()
    closed = await make_cycle(db_session, portal_open_at=now - timedelta(days=9), portal_close_at=now - timedelta(days=1))
    with pytest.raises(ValidationError):
        await application_service.save_draft(
            db_session, cycle=closed, user=make_user(), payload=ApplicationDraftIn(track="business")
        )


async def test_track_change_needs_cycle_setting(db_session):
    cycle = await make_cycle(db_session)
    user = make_user()
    await application_service.save_draft(db_session, cycle=cycle, user=user, payload=ApplicationDraftIn(track="business"))
    with pytest.raises(ValidationError):
        await application_service.save_draft(
            db_session, cycle=cycle, user=user, payload=ApplicationDraftIn(track="technical")
        )

    flexible = await make_cycle(db_session, settings_json={"allow_track_change": True})
    await application_service.save_draft(db_session, cycle=flexible, user=user, payload=ApplicationDraftIn(track="business"))
    moved = await application_service.save_draft(
        db_session, cycle=flexible, user=user, payload=ApplicationDraftIn(track="technical")
    )
    assert moved.track == "technical"


async def test_submit_checks_required_answers_and_word_limits(db_session):
    cycle = await make_cycle(db_session, settings_json={"require_resume": True})
    await question_service.upsert_questions(
        db_session,
        cycle.cycle_id,
        "both",
        [QuestionField(key="why", label="Why?", type="textarea", required=True, word_limit=5)],
    )
    user = make_user()
    await application_service.save_draft(db_session, cycle=cycle, user=user, payload=ApplicationDraftIn(track="business"))

    with pytest.raises(ValidationError) as missing:
        await application_service.submit_application(db_session, cycle=cycle, user=user)
    assert "resume" in missing.value.detail
    assert "why" in missing.value.detail

    await application_service.save_draft(
        db_session,
        cycle=cycle,
        user=user,
        payload=ApplicationDraftIn(
            track="business",
            answers={"why": "one two three four five six"},
            files={"resume": "/api/file-serve/1_resume.pdf"},
        ),
    )
    with pytest.raises(ValidationError):
        await application_service.submit_application(db_session, cycle=cycle, user=user)

    await application_service.save_draft(
        db_session,
        cycle=cycle,
        user=user,
        payload=ApplicationDraftIn(track="business", answers={"why": "Because of the mission"}),
    )
    submitted = await application_service.submit_application(db_session, cycle=cycle, user=user)
    assert submitted.stage == "submitted"
    assert submitted.submitted_at is not None
    assert submitted.files == {"resume": "/api/file-serve/1_resume.pdf"}

    with pytest.raises(ValidationError):
        await application_service.submit_application(db_session, cycle=cycle, user=user)


async def test_submit_after_due_date_is_rejected(db_session):
    now = utc_now_naive()
    cycle = await make_cycle(db_session, application_due_at=now - timedelta(minutes=1))
    user = make_user()
    await application_service.save_draft(db_session, cycle=cycle, user=user, payload=ApplicationDraftIn(track="business"))
    with pytest.raises(ValidationError):
        await application_service.submit_application(db_session, cycle=cycle, user=user)


async def test_transition_follows_stage_graph(db_session):
    cycle = await make_cycle(db_session)
    application = await _submitted(db_session, cycle)

    result = await application_service.transition_stage(
        db_session, application_id=application.application_id, to_stage="phase1_review", actor_email="admin@umich.edu"
    )
    assert (result.from_stage, result.to_stage) == ("submitted", "phase1_review")

    with pytest.raises(ValidationError):
        await application_service.transition_stage(
            db_session, application_id=application.application_id, to_stage="submitted"
        )

    forced = await application_service.transition_stage(
        db_session, application_id=application.application_id, to_stage="submitted", override=True, reason="mistake"
    )
    assert forced.to_stage == "submitted"

    actions = (
        await db_session.execute(
            select(RecActivityEvent.action_type)
            .where(RecActivityEvent.entity_type == "application")
            .order_by(RecActivityEvent.activity_event_id)
        )
    ).scalars().all()
    assert actions == ["application_submitted", "stage_changed", "stage_override"]


async def test_transition_unknown_application(db_session):
    with pytest.raises(NotFound):
        await application_service.transition_stage(db_session, application_id=999, to_stage="phase1_review")
    with pytest.raises(ValidationError):
        await application_service.transition_stage(db_session, application_id=999, to_stage="hired")


async def test_bulk_update_is_all_or_nothing(db_session):
    cycle = await make_cycle(db_session)
    first = await _submitted(db_session, cycle, "a@umich.edu")
    second = await _submitted(db_session, cycle, "b@umich.edu")

    with pytest.raises(NotFound):
        await application_service.bulk_update_stages(
            db_session, application_ids=[first.application_id, 999], to_stage="rejected"
        )
    updated = await application_service.bulk_update_stages(
        db_session, application_ids=[first.application_id, second.application_id], to_stage="phase1_review"
    )
    assert updated == 2
    counts = await application_service.count_by_stage(db_session, cycle_id=cycle.cycle_id)
    assert counts == {"phase1_review": 2}


async def test_list_applications_filters_by_track(db_session):
    cycle = await make_cycle(db_session)
    await _submitted(db_session, cycle, "t@umich.edu", track="technical")
    await _submitted(db_session, cycle, "b@umich.edu", track="business")

    technical = await application_service.list_applications(db_session, cycle_id=cycle.cycle_id, track="technical")
    assert [item.email for item in technical] == ["t@umich.edu"]
    everyone = await application_service.list_applications(db_session, cycle_id=cycle.cycle_id, stages=["submitted"])
    assert len(everyone) == 2


async def test_record_file_only_on_drafts(db_session):
    cycle = await make_cycle(db_session)
    user = make_user()
    draft = await application_service.save_draft(
        db_session, cycle=cycle, user=user, payload=ApplicationDraftIn(track="business")
    )
    await application_service.record_file(db_session, application=draft, question_key="resume", url="/api/file-serve/r.pdf")
    assert draft.files == {"resume": "/api/file-serve/r.pdf"}

    submitted = await application_service.submit_application(db_session, cycle=cycle, user=user)
    with pytest.raises(ValidationError):
        await application_service.record_file(db_session, application=submitted, question_key="resume", url="/x")


async def test_delete_application_releases_slot(db_session):
    cycle = await make_cycle(db_session)
    application = await _submitted(db_session, cycle)
    now = utc_now_naive()
    slot = RecSlot(
        cycle_id=cycle.cycle_id,
        kind="coffee_chat",
        host_name="Host",
        start_time=now + timedelta(days=1),
        end_time=now + timedelta(days=1, minutes=30),
        max_bookings=1,
        booked_count=1,
    )
    db_session.add(slot)
    await db_session.flush()
    db_session.add(
        RecSlotBooking(
            cycle_id=cycle.cycle_id,
            slot_id=slot.slot_id,
            user_id=application.user_id,
            application_id=application.application_id,
            slot_kind="coffee_chat",
        )
    )
    await db_session.commit()

    await application_service.delete_application(db_session, application_id=application.application_id)
    await db_session.refresh(slot)
    assert slot.booked_count == 0
    with pytest.raises(NotFound):
        await application_service.get_application(db_session, application.application_id)


async def test_delete_application_racing_cancel_releases_seat_once(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'apps.db'}", connect_args={"timeout": 30})
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    factory = async_sessionmaker(bind=engine, expire_on_commit=False, autoflush=False)
    try:
        async with factory() as session:
            cycle = await make_cycle(session)
            application = await _submitted(session, cycle)
            (slot,) = await slot_service.create_slots(
                session,
                cycle_id=cycle.cycle_id,
                payloads=[
                    SlotCreate(
                        kind="coffee_chat", host_name="Host", start_time=utc_now_naive() + timedelta(days=1), max_bookings=2
                    )
                ],
            )
            booking = await slot_service.book_slot(session, cycle=cycle, slot_id=slot.slot_id, user=make_user())
            await slot_service.book_slot(session, cycle=cycle, slot_id=slot.slot_id, user=make_user("other@umich.edu"))
        assert booking.application_id == application.application_id

        async def cancel():
            async with factory() as session:
                await slot_service.cancel_booking(session, booking_id=booking.booking_id, user=make_user())

        async def remove():
            async with factory() as session:
                await application_service.delete_application(session, application_id=application.application_id)

        results = await asyncio.gather(cancel(), remove(), return_exceptions=True)
        assert all(item is None or isinstance(item, NotFound) for item in results)

        async with factory() as session:
            count = (await session.execute(select(RecSlot.booked_count).where(RecSlot.slot_id == slot.slot_id))).scalar_one()
            assert count == 1
            remaining = (await session.execute(select(RecSlotBooking.user_id))).scalars().all()
            assert remaining == ["other@umich.edu"]
    finally:
        await engine.dispose()
