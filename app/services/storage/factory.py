"""Storage backend factory: picks local disk or the remote object store from settings."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from app.services.storage.local import LocalDiskStorage
from app.services.storage.protocol import StorageBackend

if TYPE_CHECKING:
    from app.core.config import Settings

logger = logging.getLogger(__name__)


class StorageFactory:
    """Factory for storage backend instances based on configuration."""

    @staticmethod
    def create_local_storage(settings: "Settings") -> LocalDiskStorage:
        """Uploads root; always available for static serving and legacy /uploads pointers."""
        return LocalDiskStorage(settings.UPLOADS_DIR, settings.UPLOADS_URL_PREFIX)

    @staticmethod
    def create_storage_backend(
        settings: "Settings",
        local: LocalDiskStorage | None = None,
    ) -> StorageBackend:
        """Return the process-wide active backend.

        The remote object store is used only when every R2_* setting it needs
        is present; anything less falls back to local disk.
        """
        if settings.remote_storage_configured:
            from app.services.storage.s3 import ObjectStoreStorage

            backend = ObjectStoreStorage(
                bucket=settings.R2_BUCKET,
                endpoint_url=settings.R2_ENDPOINT,
                access_key=settings.R2_ACCESS_KEY_ID,
                secret_key=settings.R2_SECRET_ACCESS_KEY.get_secret_value(),
                public_base_url=settings.R2_PUBLIC_BASE_URL,
                prefix=settings.R2_PREFIX,
                region=settings.R2_REGION,
                timeout=settings.R2_REQUEST_TIMEOUT_SEC,
            )
            logger.info(
                "Storage backend: remote object store",
                extra={"bucket": settings.R2_BUCKET, "prefix": settings.R2_PREFIX or ""},
            )
            return backend

        if settings.remote_storage_partially_configured:
            logger.warning(
                "R2 settings are incomplete (need R2_ENDPOINT, R2_ACCESS_KEY_ID, "
                "R2_SECRET_ACCESS_KEY, R2_BUCKET, R2_PUBLIC_BASE_URL); using local disk."
            )
        logger.info("Storage backend: local disk", extra={"root": settings.UPLOADS_DIR})
        return local or StorageFactory.create_local_storage(settings)
