from fastapi import APIRouter, Depends, File, Form, UploadFile
from fastapi.responses import Response
from sqlalchemy.ext.asyncio import AsyncSession

from app.api import deps
from app.core.errors import NotFound, ValidationError
from app.models.cycle import RecCycle
from app.schemas.application import UploadOut
from app.schemas.user import UserContext
from app.services import applications as application_service
from app.services import file_store

router = APIRouter(prefix="/api", tags=["files"])


@router.post("/recruitment/application/upload", response_model=UploadOut)
async def upload_application_file(
    question_key: str = Form(...),
    upload: UploadFile = File(...),
    cycle: RecCycle = Depends(deps.get_active_cycle),
    session: AsyncSession = Depends(deps.get_db_session),
    user: UserContext = Depends(deps.get_user),
):
    key = question_key.strip()
    if not key or len(key) > 100:
        raise ValidationError("question_key is required")
    application = await application_service.get_my_application(session, cycle_id=cycle.cycle_id, user_id=user.user_id)
    if application is None:
        raise NotFound("Save a draft application before uploading files")
    application_service.ensure_files_editable(application)
    stored_name, url = await file_store.save_upload(upload, owner=str(application.application_id), question_key=key)
    try:
        await application_service.record_file(session, application=application, question_key=key, url=url)
    except Exception:
        await file_store.discard_upload(url)
        raise
    return UploadOut(question_key=key, url=url, filename=stored_name)


@router.get("/file-serve/{filename}")
async def serve_file(filename: str):
    data, content_type = await file_store.read_served_file(file_store.uploads_dir(), filename)
    return Response(content=data, media_type=content_type, headers={"Cache-Control": "private, max-age=3600"})


@router.get("/audio-serve/{filename}")
async def serve_audio(filename: str):
    data, content_type = await file_store.read_served_file(file_store.audio_dir(), filename)
    return Response(content=data, media_type=content_type, headers={"Cache-Control": "private, max-age=3600"})
