"""Request/response schemas for auth endpoints."""

from datetime import datetime

from pydantic import BaseModel, Field


class CredentialsRequest(BaseModel):
    """Username and password for register and login (validated by the service layer)."""

    username: str = Field(..., max_length=1024, description="Username (3-64 chars, case-insensitive)")
    password: str = Field(..., max_length=1024, description="Password (6-200 chars)")


class CurrentUser(BaseModel):
    """Authenticated user (id, username, role) for dependency injection."""

    id: int
    username: str
    role: str

    class Config:
        from_attributes = True


class SessionResponse(BaseModel):
    """Opaque bearer token returned once after register or login."""

    token: str = Field(..., description="Send as: Authorization: Bearer <token>")
    expires_at: datetime = Field(..., description="Fixed expiry; no renewal on use")
    user: CurrentUser


class MeResponse(BaseModel):
    user: CurrentUser


class LogoutResponse(BaseModel):
    ok: bool = True


class UserListItem(BaseModel):
    """User entry for admin list (no password)."""

    id: int
    username: str
    role: str
    created_at: datetime | None = None

    class Config:
        from_attributes = True


class UsersListResponse(BaseModel):
    """Response for GET /auth/users (admin only)."""

    users: list[UserListItem]
