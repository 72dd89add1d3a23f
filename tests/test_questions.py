import pytest

from app.core.errors import ValidationError
from app.schemas.question import QuestionField
from app.services import questions as question_service

from conftest import dev_headers, make_cycle


def fields(*keys: str) -> list[QuestionField]:
    return [QuestionField(key=key, label=key.title(), order=index) for index, key in enumerate(keys)]


async def test_track_falls_back_to_shared_set(db_session):
    cycle = await make_cycle(db_session)
    await question_service.upsert_questions(db_session, cycle.cycle_id, "both", fields("why_us"))
    await question_service.upsert_questions(db_session, cycle.cycle_id, "technical", fields("github", "why_us"))

    technical = await question_service.get_questions_by_cycle(db_session, cycle.cycle_id, "technical")
    assert [set_.track for set_ in technical] == ["technical"]
    assert [item["key"] for item in technical[0].fields] == ["github", "why_us"]

    business = await question_service.get_questions_by_cycle(db_session, cycle.cycle_id, "business")
    assert [set_.track for set_ in business] == ["both"]

    every = await question_service.get_questions_by_cycle(db_session, cycle.cycle_id)
    assert sorted(set_.track for set_ in every) == ["both", "technical"]


async def test_no_sets_means_no_questions(db_session):
    cycle = await make_cycle(db_session)
    assert await question_service.get_questions_by_cycle(db_session, cycle.cycle_id, "business") == []
    assert await question_service.get_fields_for_track(db_session, cycle.cycle_id, "business") == []


async def test_unknown_track_is_rejected(db_session):
    cycle = await make_cycle(db_session)
    with pytest.raises(ValidationError):
        await question_service.get_questions_by_cycle(db_session, cycle.cycle_id, "marketing")


async def test_upsert_replaces_fields_and_validates(db_session):
    cycle = await make_cycle(db_session)
    first = await question_service.upsert_questions(db_session, cycle.cycle_id, "both", fields("a", "b"))
    second = await question_service.upsert_questions(db_session, cycle.cycle_id, "both", fields("c"))
    assert first.question_set_id == second.question_set_id
    assert [item["key"] for item in second.fields] == ["c"]

    with pytest.raises(ValidationError):
        await question_service.upsert_questions(db_session, cycle.cycle_id, "both", fields("a", "a"))
    with pytest.raises(ValidationError):
        await question_service.upsert_questions(
            db_session, cycle.cycle_id, "both", [QuestionField(key="year", label="Year", type="select")]
        )


async def test_applicant_question_route(client, db_session):
    cycle = await make_cycle(db_session)
    await question_service.upsert_questions(db_session, cycle.cycle_id, "both", fields("why_us"))

    response = await client.get("/api/recruitment/questions", params={"track": "ai_energy_efficiency"}, headers=dev_headers())
    assert response.status_code == 200
    body = response.json()
    assert body[0]["track"] == "both"
    assert body[0]["fields"][0]["key"] == "why_us"
