"""Asset lifecycle: create, replace and delete project audio/cover assets.

The database row and the blob store are never updated atomically. Each
operation is an ordered sequence of steps with a compensating action:

- create audio: put object -> insert row; insert failure deletes the object.
- replace cover: put new object -> update row -> delete previous object;
  update failure deletes the new object and leaves the previous one alone.
- delete project: delete row -> best-effort delete of audio and cover.

A failed cleanup leaves an orphaned blob (harmless) and is logged; a row is
never left pointing at an object that was not written.
"""

import base64
import binascii
import logging
import posixpath
import re
from dataclasses import dataclass
from typing import BinaryIO
from urllib.parse import urlparse

import httpx
from sqlalchemy.orm import Session

from app.core.errors import (
    AppError,
    BackendNotConfigured,
    InvalidSourceUrl,
    UpstreamFailure,
    ValidationFailed,
)
from app.models import Project
from app.schemas.auth import CurrentUser
from app.services.storage import (
    CACHE_IMMUTABLE,
    AssetPointer,
    LocalDiskStorage,
    StorageBackend,
    StorageKind,
)
from app.services.storage.keys import (
    DEFAULT_IMAGE_MIME,
    audio_logical_path,
    audio_mime_for,
    cover_logical_path,
    normalize_mime,
)

logger = logging.getLogger(__name__)

DEFAULT_PROJECT_NAME = "Untitled Project"
PROJECT_NAME_MAX_LEN = 255
DEFAULT_MAX_FETCH_BYTES = 100 * 1024 * 1024

_DATA_URI = re.compile(r"^data:(image/[a-zA-Z0-9.+-]+);base64,(.+)$", re.DOTALL)


def is_http_url(value: str | None) -> bool:
    return bool(value) and (value.startswith("http://") or value.startswith("https://"))


def clean_project_name(name: str | None, default: str | None = DEFAULT_PROJECT_NAME) -> str:
    """Trimmed name; blank falls back to default (or fails when default is None)."""
    cleaned = (name or "").strip()
    if not cleaned:
        if default is None:
            raise ValidationFailed("Name is required")
        return default
    if len(cleaned) > PROJECT_NAME_MAX_LEN:
        raise ValidationFailed(f"Name must be at most {PROJECT_NAME_MAX_LEN} characters")
    return cleaned


@dataclass(frozen=True)
class InboundAudio:
    """Bytes already received by the transfer layer, with their declared metadata."""

    file: BinaryIO
    filename: str
    content_type: str
    size: int | None = None


@dataclass(frozen=True)
class LoadedAudio:
    data: bytes
    mime_type: str
    filename: str


class AssetLifecycleManager:
    """Keeps Project pointer fields consistent with the active storage backend.

    ``storage`` is the process-wide active backend. ``uploads`` is the local
    uploads root, which is consulted for /uploads/... pointers regardless of
    the active backend (rows written before the remote store was enabled).
    """

    def __init__(
        self,
        storage: StorageBackend,
        uploads: LocalDiskStorage,
        fetch_timeout: float = 60.0,
        max_fetch_bytes: int = DEFAULT_MAX_FETCH_BYTES,
    ) -> None:
        self.storage = storage
        self.uploads = uploads
        self.fetch_timeout = fetch_timeout
        self.max_fetch_bytes = max_fetch_bytes

    async def create_audio_project(
        self,
        db: Session,
        owner: CurrentUser,
        name: str | None,
        audio: InboundAudio,
    ) -> Project:
        """Store the audio under a fresh key, then insert the row; undo the upload if the insert fails."""
        project_name = clean_project_name(name)
        object_key = self.storage.key_for(audio_logical_path(audio.filename))
        await self.storage.put(
            object_key,
            audio.file,
            content_type=normalize_mime(audio.content_type, "application/octet-stream"),
            content_length=audio.size,
            cache_policy=CACHE_IMMUTABLE,
        )
        pointer = self.storage.pointer(object_key)

        project = Project(
            name=project_name,
            audio_url=pointer.url,
            audio_object_key=pointer.object_key,
            user_id=owner.id,
        )
        try:
            db.add(project)
            db.commit()
        except Exception:
            db.rollback()
            logger.warning(
                "Project insert failed; removing uploaded audio",
                extra={"object_key": object_key, "backend": self.storage.kind.value},
            )
            await self._delete_quietly(self.storage, object_key, "audio")
            raise
        db.refresh(project)
        logger.info(
            "Project created",
            extra={"project_id": project.id, "backend": self.storage.kind.value},
        )
        return project

    async def replace_cover(self, db: Session, project: Project, source_url: str) -> Project:
        """Capture source_url as the project's cover; the previous cover is removed only after commit."""
        previous = (
            AssetPointer(url=project.cover_url, object_key=project.cover_object_key)
            if project.cover_url
            else None
        )
        new_pointer, stored_key = await self._capture_cover(project.id, source_url)

        project.cover_url = new_pointer.url
        project.cover_object_key = new_pointer.object_key
        try:
            db.commit()
        except Exception:
            db.rollback()
            if stored_key is not None:
                logger.warning(
                    "Cover update failed; removing new cover object",
                    extra={"project_id": project.id, "object_key": stored_key},
                )
                await self._delete_quietly(self.storage, stored_key, "cover")
            raise

        if previous is not None and previous != new_pointer:
            await self.release(previous, "cover")
        db.refresh(project)
        return project

    async def delete_project(self, db: Session, project: Project) -> None:
        """Delete the row, then attempt removal of both assets; blob failures are only logged."""
        project_id = project.id
        audio = AssetPointer(url=project.audio_url, object_key=project.audio_object_key)
        cover = (
            AssetPointer(url=project.cover_url, object_key=project.cover_object_key)
            if project.cover_url
            else None
        )
        db.delete(project)
        db.commit()

        await self.release(audio, "audio", project_id=project_id)
        if cover is not None:
            await self.release(cover, "cover", project_id=project_id)

    async def release(
        self,
        pointer: AssetPointer,
        slot: str,
        project_id: int | None = None,
    ) -> bool:
        """Best-effort delete of the blob behind pointer. Returns False when it failed."""
        try:
            if pointer.object_key:
                if self.storage.kind is not StorageKind.REMOTE:
                    raise BackendNotConfigured(
                        "Remote object store is not configured",
                        {"object_key": pointer.object_key},
                    )
                await self.storage.delete(pointer.object_key)
            elif self.uploads.owns_url(pointer.url):
                await self.uploads.delete(self.uploads.key_from_url(pointer.url))
            # External URLs were never captured; nothing to reclaim.
            return True
        except AppError as e:
            logger.error(
                "Failed to delete %s asset",
                slot,
                extra={
                    "project_id": project_id,
                    "kind": e.kind.value,
                    "reason": e.message,
                    "details": e.details,
                },
            )
            return False

    async def load_audio(self, project: Project) -> LoadedAudio:
        """Read a project's audio from the uploads root or its public URL."""
        url = project.audio_url
        if self.uploads.owns_url(url):
            key = self.uploads.key_from_url(url)
            data = await self.uploads.read_bytes(key)
            name = posixpath.basename(key)
            return LoadedAudio(data=data, mime_type=audio_mime_for(name), filename=name)
        if is_http_url(url):
            data, header_mime = await self._http_get(url)
            url_path = urlparse(url).path
            name = posixpath.basename(url_path) or f"project-{project.id}.wav"
            mime = header_mime.split(";")[0].strip().lower() if header_mime else audio_mime_for(url_path)
            return LoadedAudio(data=data, mime_type=mime, filename=name)
        raise InvalidSourceUrl("Invalid audio URL", {"project_id": project.id})

    async def fetch_source(self, source_url: str) -> tuple[bytes, str]:
        """Bytes and MIME type of an image given as a data URI or an http(s) URL."""
        if source_url.startswith("data:"):
            match = _DATA_URI.match(source_url)
            if not match:
                raise InvalidSourceUrl("Unsupported data URI")
            payload = "".join(match.group(2).split())
            try:
                data = base64.b64decode(payload, validate=True)
            except (binascii.Error, ValueError) as e:
                raise InvalidSourceUrl("Malformed base64 in data URI") from e
            if not data:
                raise InvalidSourceUrl("Data URI has no content")
            if len(data) > self.max_fetch_bytes:
                raise InvalidSourceUrl("Data URI exceeds the size limit")
            return data, normalize_mime(match.group(1), DEFAULT_IMAGE_MIME)
        if is_http_url(source_url):
            data, header_mime = await self._http_get(source_url)
            return data, normalize_mime(header_mime, DEFAULT_IMAGE_MIME)
        raise InvalidSourceUrl("Cover source must be an http(s) URL or an image data URI")

    async def _capture_cover(
        self, project_id: int, source_url: str
    ) -> tuple[AssetPointer, str | None]:
        """Store the cover; returns the pointer and the key written (None if not captured)."""
        try:
            data, mime_type = await self.fetch_source(source_url)
            if not mime_type.startswith("image/"):
                mime_type = DEFAULT_IMAGE_MIME
            object_key = self.storage.key_for(cover_logical_path(project_id, mime_type))
            await self.storage.put(
                object_key,
                data,
                content_type=mime_type,
                content_length=len(data),
                cache_policy=CACHE_IMMUTABLE,
            )
        except AppError as e:
            if isinstance(e, InvalidSourceUrl):
                raise
            # Local mode may keep pointing at an uncaptured http(s) source; remote mode may not.
            if self.storage.kind is StorageKind.LOCAL and is_http_url(source_url):
                logger.warning(
                    "Failed to capture cover; storing source URL",
                    extra={"project_id": project_id, "kind": e.kind.value, "reason": e.message},
                )
                return AssetPointer(url=source_url, object_key=None), None
            raise
        return self.storage.pointer(object_key), object_key

    async def _http_get(self, url: str) -> tuple[bytes, str | None]:
        """Stream the body, giving up once it exceeds max_fetch_bytes."""
        timeout = httpx.Timeout(self.fetch_timeout)
        try:
            async with httpx.AsyncClient(timeout=timeout, follow_redirects=True) as client:
                async with client.stream("GET", url) as response:
                    if response.status_code != 200:
                        raise UpstreamFailure(
                            f"Asset fetch returned status {response.status_code}",
                            {"status_code": response.status_code},
                        )
                    chunks: list[bytes] = []
                    received = 0
                    async for chunk in response.aiter_bytes():
                        received += len(chunk)
                        if received > self.max_fetch_bytes:
                            raise UpstreamFailure(
                                "Asset exceeds the size limit",
                                {"limit_bytes": self.max_fetch_bytes},
                            )
                        chunks.append(chunk)
                    return b"".join(chunks), response.headers.get("content-type")
        except httpx.HTTPError as e:
            raise UpstreamFailure("Failed to fetch asset", {"reason": type(e).__name__}) from e

    async def _delete_quietly(self, backend: StorageBackend, object_key: str, slot: str) -> None:
        """Compensating delete; a failure here is logged, the original error still propagates."""
        try:
            await backend.delete(object_key)
        except AppError as e:
            logger.error(
                "Compensating delete of %s object failed",
                slot,
                extra={"object_key": object_key, "kind": e.kind.value, "details": e.details},
            )
