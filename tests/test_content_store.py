import pytest

from app.core.errors import NotFound, ValidationError
from app.services.content_store import DEFAULT_CONTENT, MEMBER_LEVELS, RECRUITMENT_TIMELINE, ContentStore

from conftest import dev_headers


async def test_defaults_until_saved(db_session):
    store = ContentStore(db_session)
    content = await store.get(RECRUITMENT_TIMELINE)
    assert content["hero_title"] == DEFAULT_CONTENT[RECRUITMENT_TIMELINE]["hero_title"]
    assert content["last_updated"] is None


async def test_partial_update_merges(db_session):
    store = ContentStore(db_session)
    await store.update(MEMBER_LEVELS, {"hero_title": "Join Us"}, actor_email="admin@umich.edu")
    saved = await store.update(MEMBER_LEVELS, {"general_bullets": ["Meetings"]})
    assert saved["hero_title"] == "Join Us"
    assert saved["general_bullets"] == ["Meetings"]
    assert saved["project_title"] == DEFAULT_CONTENT[MEMBER_LEVELS]["project_title"]
    assert (await store.get(MEMBER_LEVELS))["last_updated"] is not None


async def test_unknown_key_and_fields(db_session):
    store = ContentStore(db_session)
    with pytest.raises(NotFound):
        await store.get("faq")
    with pytest.raises(ValidationError):
        await store.update(MEMBER_LEVELS, {"colour": "blue"})


async def test_content_routes(client):
    updated = await client.put(
        "/api/admin/recruitment/content/timeline",
        json={"hero_title": "Fall Timeline"},
        headers=dev_headers("admin@umich.edu", "ADMIN"),
    )
    assert updated.status_code == 200
    public = await client.get("/api/recruitment/timeline")
    assert public.status_code == 200
    assert public.json()["hero_title"] == "Fall Timeline"

    denied = await client.put(
        "/api/admin/recruitment/content/timeline", json={"hero_title": "x"}, headers=dev_headers()
    )
    assert denied.status_code == 403
