"""Centralized exception handlers for the FastAPI app.

Register with register_exception_handlers(app). Maps AppError kinds and
framework exceptions to JSON responses of the form {"error": ...}.
"""

import logging
from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.core.errors import AppError, ErrorKind

logger = logging.getLogger(__name__)

_KIND_STATUS: dict[ErrorKind, int] = {
    ErrorKind.AUTHENTICATION_MISSING: 401,
    ErrorKind.AUTHENTICATION_EXPIRED: 401,
    ErrorKind.AUTHORIZATION_DENIED: 403,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.STORAGE_INCONSISTENT: 404,
    ErrorKind.ASSET_MISSING: 404,
    ErrorKind.CONFLICT: 409,
    ErrorKind.VALIDATION_FAILED: 400,
    ErrorKind.INVALID_SOURCE_URL: 400,
    ErrorKind.STORAGE_UNAVAILABLE: 503,
    ErrorKind.BACKEND_NOT_CONFIGURED: 503,
    ErrorKind.UPLOAD_REJECTED: 503,
    ErrorKind.UPSTREAM_FAILURE: 502,
}

# Storage inconsistencies are reported to callers as a plain not-found.
_PUBLIC_MESSAGES: dict[ErrorKind, str] = {
    ErrorKind.STORAGE_INCONSISTENT: "Not found",
}


def _debug_details_allowed(request: Request) -> bool:
    """Raw details only for authenticated callers with DEBUG_ERRORS on."""
    settings = getattr(request.app.state, "settings", None)
    if settings is None or not settings.DEBUG_ERRORS:
        return False
    return getattr(request.state, "principal", None) is not None


def _app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    """Return {"error": message} with the status mapped from exc.kind."""
    status = _KIND_STATUS.get(exc.kind, 400)
    if exc.kind in (ErrorKind.STORAGE_INCONSISTENT, ErrorKind.ASSET_MISSING):
        logger.warning(
            "Storage inconsistency",
            extra={"kind": exc.kind.value, "reason": exc.message, "details": exc.details},
        )
    content: dict[str, Any] = {"error": _PUBLIC_MESSAGES.get(exc.kind, exc.message)}
    if _debug_details_allowed(request):
        content["details"] = {"kind": exc.kind.value, "message": exc.message, **exc.details}
    headers = None
    if status == 401:
        headers = {"WWW-Authenticate": "Bearer"}
    return JSONResponse(status_code=status, content=content, headers=headers)


def _validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Return 422 with validation error details."""
    return JSONResponse(
        status_code=422,
        content={"error": "Request validation failed", "details": exc.errors()},
    )


def _http_exception_handler(
    request: Request, exc: StarletteHTTPException
) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.detail},
        headers=getattr(exc, "headers", None),
    )


def _generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Return 500; include the exception type and text only for debug-enabled principals."""
    logger.exception("Unhandled exception: %s", exc)
    content: dict[str, Any] = {"error": "Internal server error"}
    if _debug_details_allowed(request):
        content["details"] = {"name": type(exc).__name__, "message": str(exc)}
    return JSONResponse(status_code=500, content=content)


def register_exception_handlers(app: FastAPI) -> None:
    """Register all exception handlers on the FastAPI app.

    Call once after creating the app. Handlers: AppError (and subclasses),
    RequestValidationError, StarletteHTTPException, generic Exception.
    """
    app.add_exception_handler(AppError, _app_error_handler)
    app.add_exception_handler(RequestValidationError, _validation_exception_handler)
    app.add_exception_handler(StarletteHTTPException, _http_exception_handler)
    app.add_exception_handler(Exception, _generic_exception_handler)
