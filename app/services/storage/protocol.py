"""Storage backend protocol. Implementations: LocalDiskStorage, ObjectStoreStorage."""

from dataclasses import dataclass
from enum import Enum
from typing import BinaryIO, Protocol

# Asset keys are never reused for new content, so clients may cache forever.
CACHE_IMMUTABLE = "public, max-age=31536000, immutable"


class StorageKind(str, Enum):
    LOCAL = "local"
    REMOTE = "remote"


@dataclass(frozen=True)
class AssetPointer:
    """Values for a project's (url, object_key) column pair."""

    url: str
    object_key: str | None


class StorageBackend(Protocol):
    """Capability interface shared by the local disk and remote object store variants."""

    kind: StorageKind

    def key_for(self, logical_path: str) -> str:
        """Map a logical path (e.g. audio/123-ab.mp3) to this backend's object key."""
        ...

    def public_url(self, object_key: str) -> str:
        """URL clients use to fetch the object."""
        ...

    def pointer(self, object_key: str) -> AssetPointer:
        """Pointer fields to persist for an object stored under object_key."""
        ...

    async def put(
        self,
        object_key: str,
        body: bytes | BinaryIO,
        content_type: str,
        content_length: int | None = None,
        cache_policy: str | None = None,
    ) -> None:
        """Store body under object_key, replacing any existing object. Raises UploadRejected."""
        ...

    async def delete(self, object_key: str) -> None:
        """Delete object_key. Deleting a missing object is not an error."""
        ...
