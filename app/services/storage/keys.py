"""Object naming and MIME type <-> extension mappings for stored assets."""

import posixpath
import re
import secrets
import time

DEFAULT_IMAGE_MIME = "image/png"
DEFAULT_AUDIO_MIME = "audio/wav"

IMAGE_EXTENSIONS: dict[str, str] = {
    "image/png": "png",
    "image/jpeg": "jpg",
    "image/webp": "webp",
    "image/gif": "gif",
}
DEFAULT_IMAGE_EXTENSION = "png"

AUDIO_MIME_TYPES: dict[str, str] = {
    ".mp3": "audio/mpeg",
    ".webm": "audio/webm",
    ".ogg": "audio/ogg",
    ".m4a": "audio/mp4",
    ".flac": "audio/flac",
    ".wav": "audio/wav",
}

_SAFE_EXTENSION = re.compile(r"^\.[a-z0-9]{1,10}$")


def normalize_mime(mime_type: str | None, default: str) -> str:
    """Strip parameters (e.g. '; charset=...') and lower-case; default when blank."""
    if not mime_type:
        return default
    normalized = mime_type.split(";")[0].strip().lower()
    return normalized or default


def image_extension_for(mime_type: str | None) -> str:
    """File extension (no dot) for an image MIME type; unknown types map to png."""
    return IMAGE_EXTENSIONS.get(normalize_mime(mime_type, DEFAULT_IMAGE_MIME), DEFAULT_IMAGE_EXTENSION)


def audio_mime_for(filename: str) -> str:
    ext = posixpath.splitext(filename)[1].lower()
    return AUDIO_MIME_TYPES.get(ext, DEFAULT_AUDIO_MIME)


def safe_extension(filename: str | None) -> str:
    """Lower-cased extension with dot when it is short and alphanumeric, else ''."""
    if not filename:
        return ""
    ext = posixpath.splitext(posixpath.basename(filename.replace("\\", "/")))[1].lower()
    if not _SAFE_EXTENSION.match(ext):
        return ""
    return ext


def unique_name(label: str | None = None) -> str:
    """Collision-resistant name: millisecond timestamp, optional label, random hex suffix."""
    stamp = int(time.time() * 1000)
    suffix = secrets.token_hex(8)
    if label:
        return f"{stamp}-{label}-{suffix}"
    return f"{stamp}-{suffix}"


def audio_logical_path(original_filename: str | None) -> str:
    return f"audio/{unique_name()}{safe_extension(original_filename)}"


def cover_logical_path(project_id: int, mime_type: str | None) -> str:
    name = unique_name(f"project-{project_id}")
    return f"covers/project-{project_id}/{name}.{image_extension_for(mime_type)}"


def join_url(base: str, path_part: str) -> str:
    return f"{base.rstrip('/')}/{path_part.lstrip('/')}"
