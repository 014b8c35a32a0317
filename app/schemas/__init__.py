"""Pydantic request/response schemas."""

from app.schemas.auth import (
    CredentialsRequest,
    CurrentUser,
    LogoutResponse,
    MeResponse,
    SessionResponse,
    UserListItem,
    UsersListResponse,
)
from app.schemas.health import HealthResponse
from app.schemas.project import DeleteResponse, ProjectResponse, ProjectUpdateRequest

__all__ = [
    "CredentialsRequest",
    "CurrentUser",
    "DeleteResponse",
    "HealthResponse",
    "LogoutResponse",
    "MeResponse",
    "ProjectResponse",
    "ProjectUpdateRequest",
    "SessionResponse",
    "UserListItem",
    "UsersListResponse",
]
