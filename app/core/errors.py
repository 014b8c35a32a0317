"""Error taxonomy shared by auth, storage and asset lifecycle code.

Every error carries a ``kind`` discriminant. The HTTP layer maps kinds to
status codes in app.core.exception_handlers; services never raise
HTTPException themselves.
"""

from enum import Enum
from typing import Any


class ErrorKind(str, Enum):
    AUTHENTICATION_MISSING = "authentication_missing"
    AUTHENTICATION_EXPIRED = "authentication_expired"
    AUTHORIZATION_DENIED = "authorization_denied"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    VALIDATION_FAILED = "validation_failed"
    INVALID_SOURCE_URL = "invalid_source_url"
    STORAGE_UNAVAILABLE = "storage_unavailable"
    BACKEND_NOT_CONFIGURED = "backend_not_configured"
    UPLOAD_REJECTED = "upload_rejected"
    STORAGE_INCONSISTENT = "storage_inconsistent"
    ASSET_MISSING = "asset_missing"
    UPSTREAM_FAILURE = "upstream_failure"


class AppError(Exception):
    """Base error with a kind, a human-readable message and optional details.

    Attributes:
        kind: Discriminant used for HTTP mapping and logging.
        message: Description safe to show to the caller.
        details: Extra context (backend error codes, keys); only exposed to
            authenticated callers when DEBUG_ERRORS is enabled.
    """

    kind: ErrorKind = ErrorKind.VALIDATION_FAILED

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(message)


class AuthenticationMissing(AppError):
    kind = ErrorKind.AUTHENTICATION_MISSING

    def __init__(self, message: str = "Authentication required") -> None:
        super().__init__(message)


class AuthenticationExpired(AppError):
    """Token presented but unknown, revoked or expired (indistinguishable to callers)."""

    kind = ErrorKind.AUTHENTICATION_EXPIRED

    def __init__(self, message: str = "Authentication required") -> None:
        super().__init__(message)


class AuthorizationDenied(AppError):
    kind = ErrorKind.AUTHORIZATION_DENIED

    def __init__(self, message: str = "Forbidden") -> None:
        super().__init__(message)


class NotFound(AppError):
    kind = ErrorKind.NOT_FOUND


class Conflict(AppError):
    kind = ErrorKind.CONFLICT


class ValidationFailed(AppError):
    kind = ErrorKind.VALIDATION_FAILED


class InvalidSourceUrl(ValidationFailed):
    """Asset source is neither an http(s) URL, a data URI nor a local uploads path."""

    kind = ErrorKind.INVALID_SOURCE_URL


class StorageUnavailable(AppError):
    kind = ErrorKind.STORAGE_UNAVAILABLE


class BackendNotConfigured(StorageUnavailable):
    """A pointer or operation needs the remote store but it is not configured."""

    kind = ErrorKind.BACKEND_NOT_CONFIGURED


class UploadRejected(StorageUnavailable):
    """The storage backend refused or failed to store the object."""

    kind = ErrorKind.UPLOAD_REJECTED


class StorageInconsistent(AppError):
    """Pointer fields reference something that cannot be resolved (bad or escaping path)."""

    kind = ErrorKind.STORAGE_INCONSISTENT


class AssetMissing(StorageInconsistent):
    """Pointer resolves inside the uploads root but the file is gone (stale pointer)."""

    kind = ErrorKind.ASSET_MISSING


class UpstreamFailure(AppError):
    """Third-party AI or fetch call failed; callers usually fall back to placeholders."""

    kind = ErrorKind.UPSTREAM_FAILURE
