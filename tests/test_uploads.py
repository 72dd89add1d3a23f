from io import BytesIO

import pytest
from fastapi import UploadFile
from starlette.datastructures import Headers

from app.core.errors import NotFound, ValidationError
from app.core.uploads import (
    DOC_EXTENSIONS,
    DOC_MIME_TYPES,
    content_type_for,
    resolve_served_path,
    sanitize_filename,
    validate_upload,
)
from app.models.application import RecApplication
from app.services import applications as application_service
from app.services import file_store

from conftest import dev_headers, make_cycle


def make_upload(name: str, content_type: str, data: bytes = b"%PDF-1.4 test") -> UploadFile:
    return UploadFile(file=BytesIO(data), filename=name, headers=Headers({"content-type": content_type}))


def test_sanitize_filename_strips_path_parts():
    assert sanitize_filename("../../etc/passwd") == "etc_passwd"
    assert sanitize_filename("my resume (final).pdf") == "my_resume_final_.pdf"
    assert sanitize_filename("") == "file"
    assert len(sanitize_filename("a" * 400 + ".pdf")) == 150


def test_validate_upload_checks_extension_and_mime():
    assert validate_upload(
        make_upload("resume.pdf", "application/pdf"),
        allowed_extensions=DOC_EXTENSIONS,
        allowed_mime_types=DOC_MIME_TYPES,
    ) == "resume.pdf"
    with pytest.raises(ValidationError):
        validate_upload(
            make_upload("script.sh", "text/x-sh"), allowed_extensions=DOC_EXTENSIONS, allowed_mime_types=DOC_MIME_TYPES
        )
    with pytest.raises(ValidationError):
        validate_upload(
            make_upload("resume.pdf", "text/html"), allowed_extensions=DOC_EXTENSIONS, allowed_mime_types=DOC_MIME_TYPES
        )


@pytest.mark.parametrize("name", ["../secret.txt", "..", "a/../b.pdf", "sub/file.pdf", "..\\win.pdf", "bad\x00.pdf", ""])
def test_served_path_rejects_traversal(tmp_path, name):
    with pytest.raises(ValidationError):
        resolve_served_path(tmp_path, name)


def test_served_path_resolves_plain_names(tmp_path):
    target = tmp_path / "resume.pdf"
    target.write_bytes(b"data")
    assert resolve_served_path(tmp_path, "resume.pdf") == target.resolve()
    with pytest.raises(NotFound):
        resolve_served_path(tmp_path, "missing.pdf")


def test_content_type_lookup():
    assert content_type_for("x.PDF") == "application/pdf"
    assert content_type_for("clip.m4a") == "audio/mp4"
    assert content_type_for("blob.bin") == "application/octet-stream"


async def test_save_upload_writes_file(tmp_path, monkeypatch):
    monkeypatch.setattr(file_store.settings, "uploads_dir", str(tmp_path / "docs"))
    stored, url = await file_store.save_upload(
        make_upload("Resume.pdf", "application/pdf"), owner="7", question_key="resume"
    )
    assert stored.startswith("7_resume_") and stored.endswith(".pdf")
    assert url == f"/api/file-serve/{stored}"
    data, content_type = await file_store.read_served_file(tmp_path / "docs", stored)
    assert data == b"%PDF-1.4 test"
    assert content_type == "application/pdf"


async def test_save_upload_rejects_empty_and_oversized(tmp_path, monkeypatch):
    monkeypatch.setattr(file_store.settings, "uploads_dir", str(tmp_path))
    with pytest.raises(ValidationError):
        await file_store.save_upload(make_upload("a.pdf", "application/pdf", b""), owner="1", question_key="resume")
    monkeypatch.setattr(file_store.settings, "max_upload_mb", 0)
    with pytest.raises(ValidationError):
        await file_store.save_upload(make_upload("a.pdf", "application/pdf"), owner="1", question_key="resume")
    assert list(tmp_path.iterdir()) == []


async def test_file_serve_route_rejects_traversal(client):
    response = await client.get("/api/file-serve/..%5Csecret.pdf")
    assert response.status_code == 400
    assert response.json() == {"error": "Invalid filename"}


async def _application(session, stage: str) -> RecApplication:
    cycle = await make_cycle(session)
    application = RecApplication(
        cycle_id=cycle.cycle_id, user_id="applicant@umich.edu", email="applicant@umich.edu", track="technical", stage=stage
    )
    session.add(application)
    await session.commit()
    return application


def _stored_files(directory) -> list:
    return list(directory.iterdir()) if directory.exists() else []


async def test_upload_route_records_file_on_draft(client, db_session, tmp_path, monkeypatch):
    monkeypatch.setattr(file_store.settings, "uploads_dir", str(tmp_path / "docs"))
    application = await _application(db_session, "draft")
    response = await client.post(
        "/api/recruitment/application/upload",
        data={"question_key": "resume"},
        files={"upload": ("resume.pdf", b"%PDF-1.4 test", "application/pdf")},
        headers=dev_headers(),
    )
    assert response.status_code == 200
    body = response.json()
    assert body["url"].startswith("/api/file-serve/")
    assert [path.name for path in _stored_files(tmp_path / "docs")] == [body["filename"]]
    await db_session.refresh(application)
    assert application.files == {"resume": body["url"]}


async def test_upload_route_stores_nothing_for_submitted_application(client, db_session, tmp_path, monkeypatch):
    monkeypatch.setattr(file_store.settings, "uploads_dir", str(tmp_path / "docs"))
    await _application(db_session, "submitted")
    response = await client.post(
        "/api/recruitment/application/upload",
        data={"question_key": "resume"},
        files={"upload": ("resume.pdf", b"%PDF-1.4 test", "application/pdf")},
        headers=dev_headers(),
    )
    assert response.status_code == 400
    assert response.json() == {"error": "Files can only be changed on a draft application"}
    assert _stored_files(tmp_path / "docs") == []


async def test_upload_is_removed_when_recording_fails(client, db_session, tmp_path, monkeypatch):
    monkeypatch.setattr(file_store.settings, "uploads_dir", str(tmp_path / "docs"))
    await _application(db_session, "draft")

    async def submitted_meanwhile(session, **kwargs):
        raise ValidationError("Files can only be changed on a draft application")

    monkeypatch.setattr(application_service, "record_file", submitted_meanwhile)
    response = await client.post(
        "/api/recruitment/application/upload",
        data={"question_key": "resume"},
        files={"upload": ("resume.pdf", b"%PDF-1.4 test", "application/pdf")},
        headers=dev_headers(),
    )
    assert response.status_code == 400
    assert _stored_files(tmp_path / "docs") == []
