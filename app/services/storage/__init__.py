"""Storage: local filesystem and S3-compatible backends.

StorageFactory picks exactly one active backend at startup. The S3
implementation (and boto3) is imported only when the remote store is
configured.
"""

from app.services.storage.factory import StorageFactory
from app.services.storage.local import LocalDiskStorage
from app.services.storage.protocol import (
    CACHE_IMMUTABLE,
    AssetPointer,
    StorageBackend,
    StorageKind,
)

__all__ = [
    "CACHE_IMMUTABLE",
    "AssetPointer",
    "LocalDiskStorage",
    "StorageBackend",
    "StorageFactory",
    "StorageKind",
]
