"""Request/response schemas for project endpoints."""

from datetime import datetime

from pydantic import BaseModel, Field


class ProjectResponse(BaseModel):
    """Project row with asset pointers and the owner's username (null when orphaned)."""

    id: int
    name: str
    audio_url: str
    audio_object_key: str | None = None
    transcription: str | None = None
    emotional_analysis: str | None = None
    cover_url: str | None = None
    cover_object_key: str | None = None
    created_at: datetime | None = None
    user_id: int | None = None
    owner_username: str | None = None

    class Config:
        from_attributes = True


class ProjectUpdateRequest(BaseModel):
    name: str = Field(..., max_length=1024, description="New project name (1-255 chars)")


class DeleteResponse(BaseModel):
    ok: bool = True
