"""Tests for AssetLifecycleManager: create/replace/delete ordering and compensating cleanup."""

import asyncio
import base64
import io
import tempfile
import unittest
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.core.errors import (
    AssetMissing,
    InvalidSourceUrl,
    StorageUnavailable,
    UploadRejected,
    UpstreamFailure,
    ValidationFailed,
)
from app.models import Base, Project, User
from app.schemas.auth import CurrentUser
from app.services.assets import (
    DEFAULT_PROJECT_NAME,
    AssetLifecycleManager,
    InboundAudio,
    clean_project_name,
)
from app.services.storage import CACHE_IMMUTABLE, AssetPointer, LocalDiskStorage, StorageKind

PNG_BYTES = b"\x89PNG\r\n\x1a\nfake"
PNG_DATA_URI = "data:image/png;base64," + base64.b64encode(PNG_BYTES).decode("ascii")


class FakeObjectStore:
    """Remote backend double that records puts and deletes."""

    kind = StorageKind.REMOTE

    def __init__(self) -> None:
        self.puts: list[dict] = []
        self.deleted: list[str] = []
        self.put_error: Exception | None = None
        self.delete_errors: dict[str, Exception] = {}

    def key_for(self, logical_path: str) -> str:
        return f"media/{logical_path}"

    def public_url(self, object_key: str) -> str:
        return f"https://cdn.test/{object_key}"

    def pointer(self, object_key: str) -> AssetPointer:
        return AssetPointer(url=self.public_url(object_key), object_key=object_key)

    async def put(self, object_key, body, content_type, content_length=None, cache_policy=None):
        if self.put_error is not None:
            raise self.put_error
        self.puts.append(
            {
                "key": object_key,
                "content_type": content_type,
                "content_length": content_length,
                "cache_policy": cache_policy,
            }
        )

    async def delete(self, object_key: str) -> None:
        self.deleted.append(object_key)
        if object_key in self.delete_errors:
            raise self.delete_errors[object_key]


def _audio(filename: str = "song.mp3", data: bytes = b"ID3audio") -> InboundAudio:
    return InboundAudio(
        file=io.BytesIO(data),
        filename=filename,
        content_type="audio/mpeg",
        size=len(data),
    )


class AssetTestCase(unittest.TestCase):
    def setUp(self) -> None:
        tmp = tempfile.TemporaryDirectory()
        self.addCleanup(tmp.cleanup)
        self.uploads = LocalDiskStorage(Path(tmp.name) / "uploads", "/uploads")
        self.remote = FakeObjectStore()
        self.remote_manager = AssetLifecycleManager(storage=self.remote, uploads=self.uploads)
        self.local_manager = AssetLifecycleManager(storage=self.uploads, uploads=self.uploads)

        engine = create_engine(
            "sqlite://",
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
        Base.metadata.create_all(engine)
        self.addCleanup(engine.dispose)
        self.db = sessionmaker(bind=engine)()
        self.addCleanup(self.db.close)
        user = User(username="alice", password_hash="scrypt$x$y")
        self.db.add(user)
        self.db.commit()
        self.owner = CurrentUser(id=user.id, username="alice", role="user")

    def _project(self, **fields: object) -> Project:
        values = {"name": "Song", "audio_url": "https://cdn.test/media/audio/a.mp3", "user_id": self.owner.id}
        values.update(fields)
        project = Project(**values)
        self.db.add(project)
        self.db.commit()
        return project


class TestCleanProjectName(unittest.TestCase):
    def test_defaults_and_trimming(self) -> None:
        self.assertEqual(clean_project_name(None), DEFAULT_PROJECT_NAME)
        self.assertEqual(clean_project_name("   "), DEFAULT_PROJECT_NAME)
        self.assertEqual(clean_project_name("  Night Drive "), "Night Drive")

    def test_required_when_no_default(self) -> None:
        with self.assertRaises(ValidationFailed):
            clean_project_name("  ", default=None)

    def test_too_long(self) -> None:
        with self.assertRaises(ValidationFailed):
            clean_project_name("x" * 256)


class TestCreateAudioProject(AssetTestCase):
    def test_remote_upload_then_insert(self) -> None:
        project = asyncio.run(
            self.remote_manager.create_audio_project(self.db, self.owner, "  Demo ", _audio())
        )
        self.assertEqual(len(self.remote.puts), 1)
        put = self.remote.puts[0]
        self.assertTrue(put["key"].startswith("media/audio/"))
        self.assertTrue(put["key"].endswith(".mp3"))
        self.assertEqual(put["content_type"], "audio/mpeg")
        self.assertEqual(put["cache_policy"], CACHE_IMMUTABLE)
        self.assertEqual(project.name, "Demo")
        self.assertEqual(project.audio_object_key, put["key"])
        self.assertEqual(project.audio_url, f"https://cdn.test/{put['key']}")
        self.assertEqual(project.user_id, self.owner.id)

    def test_local_upload_writes_file(self) -> None:
        project = asyncio.run(
            self.local_manager.create_audio_project(self.db, self.owner, None, _audio("take.wav", b"RIFF"))
        )
        self.assertEqual(project.name, DEFAULT_PROJECT_NAME)
        self.assertIsNone(project.audio_object_key)
        self.assertTrue(project.audio_url.startswith("/uploads/audio/"))
        key = self.uploads.key_from_url(project.audio_url)
        self.assertEqual(self.uploads.resolve_path(key).read_bytes(), b"RIFF")

    def test_unsafe_extension_dropped(self) -> None:
        project = asyncio.run(
            self.remote_manager.create_audio_project(self.db, self.owner, None, _audio("evil.mp3/../x"))
        )
        self.assertNotIn("..", project.audio_object_key)

    def test_insert_failure_deletes_uploaded_object(self) -> None:
        db = MagicMock()
        db.commit.side_effect = RuntimeError("insert failed")
        with self.assertRaises(RuntimeError):
            asyncio.run(self.remote_manager.create_audio_project(db, self.owner, "x", _audio()))
        db.rollback.assert_called_once()
        self.assertEqual(self.remote.deleted, [self.remote.puts[0]["key"]])

    def test_insert_failure_with_failing_cleanup_still_raises_original(self) -> None:
        db = MagicMock()
        db.commit.side_effect = RuntimeError("insert failed")
        self.remote.delete = AsyncMock(side_effect=StorageUnavailable("store down"))
        with self.assertLogs("app.services.assets", level="ERROR"):
            with self.assertRaises(RuntimeError):
                asyncio.run(self.remote_manager.create_audio_project(db, self.owner, "x", _audio()))

    def test_upload_failure_writes_no_row(self) -> None:
        self.remote.put_error = UploadRejected("rejected")
        db = MagicMock()
        with self.assertRaises(UploadRejected):
            asyncio.run(self.remote_manager.create_audio_project(db, self.owner, "x", _audio()))
        db.add.assert_not_called()
        db.commit.assert_not_called()

    def test_invalid_name_uploads_nothing(self) -> None:
        with self.assertRaises(ValidationFailed):
            asyncio.run(
                self.remote_manager.create_audio_project(self.db, self.owner, "x" * 300, _audio())
            )
        self.assertEqual(self.remote.puts, [])


class TestReplaceCover(AssetTestCase):
    def test_previous_cover_deleted_once_after_commit(self) -> None:
        project = self._project(
            cover_url="https://cdn.test/media/covers/old.png",
            cover_object_key="media/covers/old.png",
        )
        asyncio.run(self.remote_manager.replace_cover(self.db, project, PNG_DATA_URI))

        new_key = self.remote.puts[0]["key"]
        self.assertTrue(new_key.startswith(f"media/covers/project-{project.id}/"))
        self.assertTrue(new_key.endswith(".png"))
        self.assertEqual(self.remote.puts[0]["content_length"], len(PNG_BYTES))
        self.assertEqual(self.remote.deleted, ["media/covers/old.png"])

        stored = self.db.get(Project, project.id)
        self.assertEqual(stored.cover_object_key, new_key)
        self.assertEqual(stored.cover_url, f"https://cdn.test/{new_key}")

    def test_commit_failure_keeps_previous_cover(self) -> None:
        project = Project(
            id=7,
            name="Song",
            audio_url="https://cdn.test/a.mp3",
            cover_url="https://cdn.test/media/covers/old.png",
            cover_object_key="media/covers/old.png",
        )
        db = MagicMock()
        db.commit.side_effect = RuntimeError("update failed")
        with self.assertRaises(RuntimeError):
            asyncio.run(self.remote_manager.replace_cover(db, project, PNG_DATA_URI))

        new_key = self.remote.puts[0]["key"]
        db.rollback.assert_called_once()
        self.assertEqual(self.remote.deleted, [new_key])
        self.assertNotIn("media/covers/old.png", self.remote.deleted)

    def test_first_cover_deletes_nothing(self) -> None:
        project = self._project()
        asyncio.run(self.remote_manager.replace_cover(self.db, project, PNG_DATA_URI))
        self.assertEqual(self.remote.deleted, [])
        self.assertIsNotNone(project.cover_object_key)

    def test_invalid_source_rejected_before_upload(self) -> None:
        project = self._project()
        for source in ("ftp://example.com/c.png", "/etc/passwd", "data:text/plain;base64,aGk="):
            with self.subTest(source=source):
                with self.assertRaises(InvalidSourceUrl):
                    asyncio.run(self.remote_manager.replace_cover(self.db, project, source))
        self.assertEqual(self.remote.puts, [])
        self.assertIsNone(self.db.get(Project, project.id).cover_url)

    def test_malformed_data_uri_keeps_previous_cover(self) -> None:
        project = self._project(
            cover_url="https://cdn.test/media/covers/old.png",
            cover_object_key="media/covers/old.png",
        )
        for source in ("data:image/png;base64,%%%%", "data:image/png;base64,iVBO!!", "data:image/png;base64,===="):
            with self.subTest(source=source):
                with self.assertRaises(InvalidSourceUrl):
                    asyncio.run(self.remote_manager.replace_cover(self.db, project, source))
        self.assertEqual(self.remote.puts, [])
        self.assertEqual(self.remote.deleted, [])
        stored = self.db.get(Project, project.id)
        self.assertEqual(stored.cover_object_key, "media/covers/old.png")

    def test_empty_data_uri_rejected(self) -> None:
        with self.assertRaises(InvalidSourceUrl):
            asyncio.run(self.remote_manager.fetch_source("data:image/png;base64,"))
        with self.assertRaises(InvalidSourceUrl):
            asyncio.run(self.remote_manager.fetch_source("data:image/png;base64,   "))

    def test_wrapped_base64_still_accepted(self) -> None:
        encoded = base64.encodebytes(PNG_BYTES * 20).decode("ascii")
        self.assertIn("\n", encoded)
        data, mime = asyncio.run(self.remote_manager.fetch_source("data:image/png;base64," + encoded))
        self.assertEqual(data, PNG_BYTES * 20)
        self.assertEqual(mime, "image/png")

    def test_oversized_data_uri_rejected(self) -> None:
        manager = AssetLifecycleManager(storage=self.remote, uploads=self.uploads, max_fetch_bytes=4)
        with self.assertRaises(InvalidSourceUrl):
            asyncio.run(manager.fetch_source(PNG_DATA_URI))

    def test_remote_fetch_failure_leaves_row_unchanged(self) -> None:
        project = self._project(cover_url="https://cdn.test/old.png", cover_object_key="old.png")
        with patch.object(
            AssetLifecycleManager,
            "_http_get",
            new=AsyncMock(side_effect=UpstreamFailure("fetch failed")),
        ):
            with self.assertRaises(UpstreamFailure):
                asyncio.run(
                    self.remote_manager.replace_cover(self.db, project, "https://img.test/c.png")
                )
        stored = self.db.get(Project, project.id)
        self.assertEqual(stored.cover_object_key, "old.png")
        self.assertEqual(self.remote.deleted, [])

    def test_local_fetch_failure_stores_source_url(self) -> None:
        project = self._project()
        with patch.object(
            AssetLifecycleManager,
            "_http_get",
            new=AsyncMock(side_effect=UpstreamFailure("fetch failed")),
        ):
            with self.assertLogs("app.services.assets", level="WARNING"):
                asyncio.run(
                    self.local_manager.replace_cover(self.db, project, "https://img.test/c.png")
                )
        stored = self.db.get(Project, project.id)
        self.assertEqual(stored.cover_url, "https://img.test/c.png")
        self.assertIsNone(stored.cover_object_key)

    def test_local_replace_removes_previous_file(self) -> None:
        asyncio.run(self.uploads.put("covers/project-1/old.png", b"old", "image/png"))
        project = self._project(cover_url="/uploads/covers/project-1/old.png")
        with patch.object(
            AssetLifecycleManager,
            "_http_get",
            new=AsyncMock(return_value=(PNG_BYTES, "image/jpeg; charset=binary")),
        ):
            asyncio.run(self.local_manager.replace_cover(self.db, project, "https://img.test/c"))
        stored = self.db.get(Project, project.id)
        self.assertTrue(stored.cover_url.startswith(f"/uploads/covers/project-{project.id}/"))
        self.assertTrue(stored.cover_url.endswith(".jpg"))
        self.assertFalse(self.uploads.resolve_path("covers/project-1/old.png").exists())
        new_key = self.uploads.key_from_url(stored.cover_url)
        self.assertEqual(self.uploads.resolve_path(new_key).read_bytes(), PNG_BYTES)


class TestDeleteProject(AssetTestCase):
    def test_row_removed_and_both_assets_attempted(self) -> None:
        project = self._project(
            audio_url="https://cdn.test/media/audio/a.mp3",
            audio_object_key="media/audio/a.mp3",
            cover_url="https://cdn.test/media/covers/c.png",
            cover_object_key="media/covers/c.png",
        )
        project_id = project.id
        self.remote.delete_errors["media/audio/a.mp3"] = StorageUnavailable("store down")

        with self.assertLogs("app.services.assets", level="ERROR"):
            asyncio.run(self.remote_manager.delete_project(self.db, project))

        self.assertIsNone(self.db.get(Project, project_id))
        self.assertEqual(self.remote.deleted, ["media/audio/a.mp3", "media/covers/c.png"])

    def test_local_files_removed(self) -> None:
        asyncio.run(self.uploads.put("audio/a.mp3", b"a", "audio/mpeg"))
        asyncio.run(self.uploads.put("covers/project-1/c.png", b"c", "image/png"))
        project = self._project(
            audio_url="/uploads/audio/a.mp3",
            cover_url="/uploads/covers/project-1/c.png",
        )
        asyncio.run(self.local_manager.delete_project(self.db, project))
        self.assertFalse(self.uploads.resolve_path("audio/a.mp3").exists())
        self.assertFalse(self.uploads.resolve_path("covers/project-1/c.png").exists())

    def test_unresolvable_audio_path_still_removes_cover(self) -> None:
        asyncio.run(self.uploads.put("covers/project-1/c.png", b"c", "image/png"))
        project = self._project(
            audio_url="/uploads/audio/loop.mp3",
            cover_url="/uploads/covers/project-1/c.png",
        )
        project_id = project.id
        real_resolve = Path.resolve

        def resolve(path: Path, *args: object, **kwargs: object) -> Path:
            if path.name == "loop.mp3":
                raise RuntimeError(f"Symlink loop from {str(path)!r}")
            return real_resolve(path, *args, **kwargs)

        with patch.object(Path, "resolve", new=resolve):
            with self.assertLogs("app.services.assets", level="ERROR") as logs:
                asyncio.run(self.local_manager.delete_project(self.db, project))

        self.assertIsNone(self.db.get(Project, project_id))
        self.assertEqual(logs.records[0].kind, "storage_inconsistent")
        self.assertFalse(self.uploads.resolve_path("covers/project-1/c.png").exists())

    def test_external_cover_is_left_alone(self) -> None:
        project = self._project(
            audio_object_key="media/audio/a.mp3",
            cover_url="https://img.test/c.png",
        )
        asyncio.run(self.remote_manager.delete_project(self.db, project))
        self.assertEqual(self.remote.deleted, ["media/audio/a.mp3"])


class TestRelease(AssetTestCase):
    def test_object_key_without_remote_backend(self) -> None:
        pointer = AssetPointer(url="https://cdn.test/media/a.png", object_key="media/a.png")
        with self.assertLogs("app.services.assets", level="ERROR") as logs:
            released = asyncio.run(self.local_manager.release(pointer, "cover"))
        self.assertFalse(released)
        self.assertIn("backend_not_configured", logs.records[0].kind)

    def test_escaping_local_pointer_is_not_deleted(self) -> None:
        pointer = AssetPointer(url="/uploads/../secret.txt", object_key=None)
        with self.assertLogs("app.services.assets", level="ERROR"):
            self.assertFalse(asyncio.run(self.local_manager.release(pointer, "audio")))

    def test_external_url_is_noop(self) -> None:
        pointer = AssetPointer(url="https://img.test/c.png", object_key=None)
        self.assertTrue(asyncio.run(self.remote_manager.release(pointer, "cover")))
        self.assertEqual(self.remote.deleted, [])


class TestLoadAudio(AssetTestCase):
    def test_local_audio(self) -> None:
        asyncio.run(self.uploads.put("audio/take.flac", b"fLaC", "audio/flac"))
        project = self._project(audio_url="/uploads/audio/take.flac")
        loaded = asyncio.run(self.local_manager.load_audio(project))
        self.assertEqual(loaded.data, b"fLaC")
        self.assertEqual(loaded.mime_type, "audio/flac")
        self.assertEqual(loaded.filename, "take.flac")

    def test_missing_local_file(self) -> None:
        project = self._project(audio_url="/uploads/audio/gone.mp3")
        with self.assertRaises(AssetMissing):
            asyncio.run(self.local_manager.load_audio(project))

    def test_remote_audio_uses_header_mime(self) -> None:
        project = self._project(audio_url="https://cdn.test/media/audio/a.mp3")
        with patch.object(
            AssetLifecycleManager,
            "_http_get",
            new=AsyncMock(return_value=(b"ID3", "audio/mpeg")),
        ):
            loaded = asyncio.run(self.remote_manager.load_audio(project))
        self.assertEqual(loaded.data, b"ID3")
        self.assertEqual(loaded.mime_type, "audio/mpeg")
        self.assertEqual(loaded.filename, "a.mp3")

    def test_unsupported_pointer(self) -> None:
        project = self._project(audio_url="ftp://example.com/a.mp3")
        with self.assertRaises(InvalidSourceUrl):
            asyncio.run(self.remote_manager.load_audio(project))


def _streaming_response(status: int, chunks: list[bytes], headers: dict[str, str] | None = None) -> MagicMock:
    response = MagicMock()
    response.status_code = status
    response.headers = headers or {}

    async def aiter_bytes():
        for chunk in chunks:
            yield chunk

    response.aiter_bytes = aiter_bytes
    return response


def _install_stream(mock_client_class: MagicMock, response: MagicMock) -> MagicMock:
    stream_cm = MagicMock()
    stream_cm.__aenter__ = AsyncMock(return_value=response)
    stream_cm.__aexit__ = AsyncMock(return_value=None)
    mock_instance = MagicMock()
    mock_instance.stream = MagicMock(return_value=stream_cm)
    mock_client_class.return_value.__aenter__ = AsyncMock(return_value=mock_instance)
    mock_client_class.return_value.__aexit__ = AsyncMock(return_value=None)
    return mock_instance


class TestHttpGet(AssetTestCase):
    @patch("app.services.assets.httpx.AsyncClient")
    def test_non_200_is_upstream_failure(self, mock_client_class: MagicMock) -> None:
        _install_stream(mock_client_class, _streaming_response(404, []))
        with self.assertRaises(UpstreamFailure) as ctx:
            asyncio.run(self.remote_manager.fetch_source("https://img.test/c.png"))
        self.assertEqual(ctx.exception.details["status_code"], 404)

    @patch("app.services.assets.httpx.AsyncClient")
    def test_success_returns_body_and_mime(self, mock_client_class: MagicMock) -> None:
        response = _streaming_response(200, [PNG_BYTES[:5], PNG_BYTES[5:]], {"content-type": "image/webp"})
        client = _install_stream(mock_client_class, response)
        data, mime = asyncio.run(self.remote_manager.fetch_source("https://img.test/c"))
        self.assertEqual(data, PNG_BYTES)
        self.assertEqual(mime, "image/webp")
        client.stream.assert_called_once_with("GET", "https://img.test/c")

    @patch("app.services.assets.httpx.AsyncClient")
    def test_body_over_limit_is_abandoned(self, mock_client_class: MagicMock) -> None:
        consumed: list[bytes] = []
        response = _streaming_response(200, [], {"content-type": "image/png"})

        async def aiter_bytes():
            for chunk in (b"abc", b"def", b"ghi"):
                consumed.append(chunk)
                yield chunk

        response.aiter_bytes = aiter_bytes
        _install_stream(mock_client_class, response)
        manager = AssetLifecycleManager(storage=self.remote, uploads=self.uploads, max_fetch_bytes=4)
        with self.assertRaises(UpstreamFailure) as ctx:
            asyncio.run(manager.fetch_source("https://img.test/huge.png"))
        self.assertEqual(ctx.exception.details["limit_bytes"], 4)
        self.assertEqual(consumed, [b"abc", b"def"])

    @patch("app.services.assets.httpx.AsyncClient")
    def test_body_at_limit_is_accepted(self, mock_client_class: MagicMock) -> None:
        _install_stream(mock_client_class, _streaming_response(200, [b"ab", b"cd"]))
        manager = AssetLifecycleManager(storage=self.remote, uploads=self.uploads, max_fetch_bytes=4)
        data, mime = asyncio.run(manager.fetch_source("https://img.test/c"))
        self.assertEqual(data, b"abcd")
        self.assertEqual(mime, "image/png")


if __name__ == "__main__":
    unittest.main()
