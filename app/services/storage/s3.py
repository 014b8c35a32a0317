"""S3-compatible object storage (Cloudflare R2, MinIO, AWS S3) behind a public base URL."""

from __future__ import annotations

import asyncio
import logging
from posixpath import normpath
from typing import Any, BinaryIO

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from app.core.errors import StorageUnavailable, UploadRejected, ValidationFailed
from app.services.storage.keys import join_url
from app.services.storage.protocol import AssetPointer, StorageKind

logger = logging.getLogger(__name__)


def _error_info(err: Exception) -> dict[str, Any]:
    """Backend error code, HTTP status and request id, when the SDK reports them."""
    info: dict[str, Any] = {"name": type(err).__name__, "message": str(err)}
    if isinstance(err, ClientError):
        error = err.response.get("Error") or {}
        meta = err.response.get("ResponseMetadata") or {}
        if error.get("Code"):
            info["code"] = error["Code"]
        if meta.get("HTTPStatusCode") is not None:
            info["http_status_code"] = meta["HTTPStatusCode"]
        if meta.get("RequestId"):
            info["request_id"] = meta["RequestId"]
    return info


class ObjectStoreStorage:
    """Single bucket addressed over the S3 API; URLs come from a separate public base.

    Uses boto3 (sync) via asyncio.to_thread. The client is built once with
    bounded connect/read timeouts and retries disabled, and is safe to share
    between concurrent requests.
    """

    kind = StorageKind.REMOTE

    def __init__(
        self,
        bucket: str,
        endpoint_url: str,
        access_key: str,
        secret_key: str,
        public_base_url: str,
        prefix: str | None = None,
        region: str = "auto",
        timeout: float = 30.0,
    ) -> None:
        self.bucket = bucket
        self.endpoint_url = endpoint_url
        self.public_base_url = public_base_url.rstrip("/")
        self.prefix = prefix.strip("/") if prefix else None
        self._client = boto3.client(
            "s3",
            endpoint_url=endpoint_url,
            region_name=region,
            aws_access_key_id=access_key,
            aws_secret_access_key=secret_key,
            config=Config(
                connect_timeout=timeout,
                read_timeout=timeout,
                retries={"max_attempts": 1, "mode": "standard"},
                s3={"addressing_style": "path"},
            ),
        )

    def key_for(self, logical_path: str) -> str:
        normalized = logical_path.lstrip("/")
        if not normalized or ".." in normalized.split("/") or normpath(normalized) != normalized:
            raise ValidationFailed("Invalid object path", {"path": logical_path})
        if not self.prefix:
            return normalized
        return f"{self.prefix}/{normalized}"

    def public_url(self, object_key: str) -> str:
        return join_url(self.public_base_url, object_key)

    def pointer(self, object_key: str) -> AssetPointer:
        return AssetPointer(url=self.public_url(object_key), object_key=object_key)

    async def put(
        self,
        object_key: str,
        body: bytes | BinaryIO,
        content_type: str,
        content_length: int | None = None,
        cache_policy: str | None = None,
    ) -> None:
        params: dict[str, Any] = {
            "Bucket": self.bucket,
            "Key": object_key,
            "Body": body,
            "ContentType": content_type,
        }
        if content_length is not None:
            params["ContentLength"] = content_length
        if cache_policy:
            params["CacheControl"] = cache_policy

        try:
            await asyncio.to_thread(self._client.put_object, **params)
        except (ClientError, BotoCoreError) as e:
            raise UploadRejected(
                "Object store rejected the upload",
                {"key": object_key, **_error_info(e)},
            ) from e

    async def delete(self, object_key: str) -> None:
        """DeleteObject is idempotent on S3; NoSuchKey from stricter stores is ignored."""
        try:
            await asyncio.to_thread(
                self._client.delete_object,
                Bucket=self.bucket,
                Key=object_key,
            )
        except ClientError as e:
            code = (e.response.get("Error") or {}).get("Code")
            if code in ("NoSuchKey", "404"):
                return
            raise StorageUnavailable(
                "Failed to delete object",
                {"key": object_key, **_error_info(e)},
            ) from e
        except BotoCoreError as e:
            raise StorageUnavailable(
                "Failed to delete object",
                {"key": object_key, **_error_info(e)},
            ) from e
