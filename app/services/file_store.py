from __future__ import annotations

import logging
import uuid
from pathlib import Path

import anyio
from fastapi import UploadFile

from app.core.config import settings
from app.core.errors import ValidationError
from app.core.paths import resolve_repo_path
from app.core.uploads import (
    AUDIO_EXTENSIONS,
    AUDIO_MIME_TYPES,
    DOC_EXTENSIONS,
    DOC_MIME_TYPES,
    content_type_for,
    resolve_served_path,
    sanitize_filename,
    validate_upload,
)

logger = logging.getLogger("abg.recruitment")

CHUNK_SIZE = 1024 * 1024


def uploads_dir() -> Path:
    return resolve_repo_path(settings.uploads_dir)


def audio_dir() -> Path:
    return resolve_repo_path(settings.audio_uploads_dir)


def _is_audio(filename: str) -> bool:
    return Path(filename).suffix.lower() in AUDIO_EXTENSIONS


async def save_upload(upload: UploadFile, *, owner: str, question_key: str) -> tuple[str, str]:
    """Stores an applicant upload and returns (stored filename, serving URL)."""
    filename = validate_upload(
        upload,
        allowed_extensions=DOC_EXTENSIONS | AUDIO_EXTENSIONS,
        allowed_mime_types=DOC_MIME_TYPES | AUDIO_MIME_TYPES,
    )
    audio = _is_audio(filename)
    directory = audio_dir() if audio else uploads_dir()
    stored_name = sanitize_filename(f"{owner}_{question_key}_{uuid.uuid4().hex[:12]}{Path(filename).suffix.lower()}")
    limit = int(settings.max_upload_mb) * 1024 * 1024

    await anyio.Path(directory).mkdir(parents=True, exist_ok=True)
    target = anyio.Path(directory / stored_name)
    written = 0
    async with await anyio.open_file(target, "wb") as handle:
        while True:
            chunk = await upload.read(CHUNK_SIZE)
            if not chunk:
                break
            written += len(chunk)
            if written > limit:
                break
            await handle.write(chunk)
    if written > limit:
        await target.unlink(missing_ok=True)
        raise ValidationError(f"File exceeds {settings.max_upload_mb} MB")
    if written == 0:
        await target.unlink(missing_ok=True)
        raise ValidationError("Uploaded file is empty")

    route = "audio-serve" if audio else "file-serve"
    logger.info("upload_stored", extra={"stored_name": stored_name, "bytes": written})
    return stored_name, f"/api/{route}/{stored_name}"


async def read_served_file(directory: Path, filename: str) -> tuple[bytes, str]:
    path = resolve_served_path(directory, filename)
    data = await anyio.Path(path).read_bytes()
    return data, content_type_for(path.name)


async def discard_upload(url: str) -> None:
    """Removes a stored upload by its serving URL; unknown URLs are ignored."""
    route, _, stored_name = url.rpartition("/")
    directory = audio_dir() if route.endswith("/audio-serve") else uploads_dir()
    if not stored_name or stored_name != sanitize_filename(stored_name):
        return
    await anyio.Path(directory / stored_name).unlink(missing_ok=True)
    logger.info("upload_discarded", extra={"stored_name": stored_name})
