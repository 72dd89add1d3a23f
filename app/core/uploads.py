from __future__ import annotations

import re
from pathlib import Path

from fastapi import UploadFile

from app.core.errors import NotFound, ValidationError

MAX_FILENAME_LENGTH = 150
OCTET_STREAM_MIME_TYPES = {"application/octet-stream", "binary/octet-stream"}

DOC_EXTENSIONS = {
    ".doc",
    ".docx",
    ".gif",
    ".jpeg",
    ".jpg",
    ".pdf",
    ".png",
    ".webp",
}
DOC_MIME_TYPES = {
    "application/msword",
    "application/pdf",
    "application/x-pdf",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "image/gif",
    "image/jpeg",
    "image/jpg",
    "image/png",
    "image/webp",
}

AUDIO_EXTENSIONS = {".m4a", ".mp3", ".mp4", ".ogg", ".wav", ".webm"}
AUDIO_MIME_TYPES = {
    "audio/m4a",
    "audio/mp4",
    "audio/mpeg",
    "audio/ogg",
    "audio/wav",
    "audio/webm",
    "audio/x-m4a",
    "audio/x-wav",
    "video/webm",
}

MIME_TYPES_BY_EXTENSION = {
    ".doc": "application/msword",
    ".docx": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    ".gif": "image/gif",
    ".jpeg": "image/jpeg",
    ".jpg": "image/jpeg",
    ".m4a": "audio/mp4",
    ".mp3": "audio/mpeg",
    ".mp4": "audio/mp4",
    ".ogg": "audio/ogg",
    ".pdf": "application/pdf",
    ".png": "image/png",
    ".wav": "audio/wav",
    ".webm": "audio/webm",
    ".webp": "image/webp",
}

_SAFE_NAME_RE = re.compile(r"[^A-Za-z0-9._-]+")


def sanitize_filename(raw: str | None, *, default: str = "file") -> str:
    name = (raw or "").strip() or default
    name = name.replace("/", "_").replace("\\", "_")
    name = _SAFE_NAME_RE.sub("_", name).strip("._") or default

    if len(name) > MAX_FILENAME_LENGTH:
        base, ext = _split_name_ext(name)
        keep = max(1, MAX_FILENAME_LENGTH - len(ext))
        name = f"{base[:keep]}{ext}"
    return name


def validate_upload(
    upload: UploadFile,
    *,
    allowed_extensions: set[str],
    allowed_mime_types: set[str],
) -> str:
    filename = sanitize_filename(upload.filename)
    ext = Path(filename).suffix.lower()
    if not ext or ext not in allowed_extensions:
        raise ValidationError("Unsupported file type.")

    content_type = (upload.content_type or "").strip().lower()
    if ";" in content_type:
        content_type = content_type.split(";", 1)[0].strip()
    if content_type and content_type not in allowed_mime_types and content_type not in OCTET_STREAM_MIME_TYPES:
        raise ValidationError("Unsupported file content type.")
    return filename


def resolve_served_path(directory: Path, filename: str) -> Path:
    """
    Resolves a requested filename to a file directly inside `directory`.
    Anything that is not a plain basename is rejected.
    """
    if not filename or filename in {".", ".."} or ".." in filename:
        raise ValidationError("Invalid filename")
    if "/" in filename or "\\" in filename or "\x00" in filename:
        raise ValidationError("Invalid filename")
    if Path(filename).name != filename:
        raise ValidationError("Invalid filename")

    root = directory.resolve()
    candidate = (root / filename).resolve()
    if candidate.parent != root:
        raise ValidationError("Invalid filename")
    if not candidate.is_file():
        raise NotFound("File not found")
    return candidate


def content_type_for(filename: str) -> str:
    return MIME_TYPES_BY_EXTENSION.get(Path(filename).suffix.lower(), "application/octet-stream")


def _split_name_ext(name: str) -> tuple[str, str]:
    ext = Path(name).suffix
    if ext:
        return name[: -len(ext)], ext
    return name, ""
