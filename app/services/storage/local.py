"""Local filesystem storage under a fixed uploads root with path sandboxing."""

from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path, PurePosixPath
from typing import BinaryIO

import aiofiles
import aiofiles.os

from app.core.errors import AssetMissing, StorageInconsistent, StorageUnavailable, UploadRejected
from app.services.storage.protocol import AssetPointer, StorageKind

logger = logging.getLogger(__name__)


class LocalDiskStorage:
    """Files under ``root`` served statically at ``url_prefix``.

    Every key is validated before touching the filesystem: absolute paths,
    ``..`` segments, backslashes and NUL bytes are rejected outright, and the
    resolved path (symlinks followed) must still lie inside the root. Writes
    go to a temp file in the target directory and are renamed into place.
    """

    kind = StorageKind.LOCAL
    CHUNK_SIZE = 64 * 1024  # 64KB

    def __init__(self, root: str | os.PathLike[str], url_prefix: str = "/uploads") -> None:
        self.root = Path(root).resolve()
        self.url_prefix = "/" + url_prefix.strip("/")
        self.root.mkdir(parents=True, exist_ok=True, mode=0o750)

    def _validate_key(self, key: str) -> str:
        if not isinstance(key, str) or not key or "\x00" in key or "\\" in key:
            raise StorageInconsistent("Invalid uploads path", {"key": repr(key)})
        pure = PurePosixPath(key)
        if pure.is_absolute() or ".." in pure.parts:
            raise StorageInconsistent("Invalid uploads path", {"key": key})
        return key

    def resolve_path(self, key: str) -> Path:
        """Canonical path for key. Raises StorageInconsistent if it escapes the root."""
        self._validate_key(key)
        try:
            # Symlink loops raise RuntimeError (3.11-3.12) or OSError (3.13+).
            full_path = (self.root / key).resolve()
        except (OSError, RuntimeError) as e:
            raise StorageInconsistent("Invalid uploads path", {"key": key, "reason": str(e)}) from e
        try:
            full_path.relative_to(self.root)
        except ValueError as e:
            raise StorageInconsistent("Invalid uploads path", {"key": key}) from e
        if full_path == self.root:
            raise StorageInconsistent("Invalid uploads path", {"key": key})
        return full_path

    def owns_url(self, url: str | None) -> bool:
        """True for /uploads/... style pointers produced by this backend."""
        return bool(url) and url.startswith(self.url_prefix + "/")

    def key_from_url(self, url: str) -> str:
        """Inverse of public_url for externally supplied pointers (validated)."""
        if not self.owns_url(url):
            raise StorageInconsistent("Invalid uploads URL", {"url": url})
        return self._validate_key(url[len(self.url_prefix) + 1 :])

    def key_for(self, logical_path: str) -> str:
        return self._validate_key(logical_path.lstrip("/"))

    def public_url(self, object_key: str) -> str:
        return f"{self.url_prefix}/{self._validate_key(object_key)}"

    def pointer(self, object_key: str) -> AssetPointer:
        return AssetPointer(url=self.public_url(object_key), object_key=None)

    async def put(
        self,
        object_key: str,
        body: bytes | BinaryIO,
        content_type: str,
        content_length: int | None = None,
        cache_policy: str | None = None,
    ) -> None:
        """Write body atomically (temp file + rename). Overwrites an existing file."""
        target_path = self.resolve_path(object_key)
        try:
            target_path.parent.mkdir(parents=True, exist_ok=True, mode=0o750)
            temp_fd, temp_path = tempfile.mkstemp(
                dir=target_path.parent,
                prefix=".tmp_",
                suffix=target_path.suffix,
            )
            os.close(temp_fd)
            try:
                async with aiofiles.open(temp_path, "wb") as f:
                    if isinstance(body, (bytes, bytearray)):
                        await f.write(body)
                    else:
                        while True:
                            chunk = body.read(self.CHUNK_SIZE)
                            if not chunk:
                                break
                            await f.write(chunk)
                os.chmod(temp_path, 0o640)
                os.replace(temp_path, target_path)
            finally:
                if os.path.exists(temp_path):
                    os.unlink(temp_path)
        except OSError as e:
            raise UploadRejected(
                "Failed to store file",
                {"key": object_key, "reason": str(e)},
            ) from e

    async def delete(self, object_key: str) -> None:
        """Remove the file; a missing file is not an error."""
        file_path = self.resolve_path(object_key)
        try:
            await aiofiles.os.remove(file_path)
        except FileNotFoundError:
            return
        except OSError as e:
            raise StorageUnavailable(
                "Failed to delete file",
                {"key": object_key, "reason": str(e)},
            ) from e

    async def read_bytes(self, object_key: str) -> bytes:
        """Return file content. Raises AssetMissing when the pointer is stale."""
        file_path = self.resolve_path(object_key)
        if not file_path.is_file():
            raise AssetMissing("Audio file not found on server", {"key": object_key})
        async with aiofiles.open(file_path, "rb") as f:
            return await f.read()
