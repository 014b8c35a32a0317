"""Project endpoints: upload audio, list/fetch (anonymous), rename and delete (owner or admin)."""

from typing import Annotated

from fastapi import APIRouter, Depends, File, Form, UploadFile
from sqlalchemy.orm import Session

from app.api.v1.auth import get_current_user
from app.api.v1.dependencies import get_app_settings, get_asset_manager
from app.core.config import Settings
from app.core.database import get_db
from app.core.errors import NotFound, ValidationFailed
from app.models import Project, User
from app.schemas.auth import CurrentUser
from app.schemas.project import DeleteResponse, ProjectResponse, ProjectUpdateRequest
from app.services.access import get_project_for_write
from app.services.assets import AssetLifecycleManager, InboundAudio, clean_project_name

router = APIRouter()


def _with_owner_query(db: Session):
    return db.query(Project, User.username).outerjoin(User, User.id == Project.user_id)


def _to_response(project: Project, owner_username: str | None) -> ProjectResponse:
    response = ProjectResponse.model_validate(project)
    response.owner_username = owner_username
    return response


def load_project_response(db: Session, project_id: int) -> ProjectResponse:
    """Project with owner_username, or NotFound."""
    row = _with_owner_query(db).filter(Project.id == project_id).first()
    if row is None:
        raise NotFound("Project not found")
    project, owner_username = row
    return _to_response(project, owner_username)


@router.post("", response_model=ProjectResponse)
async def create_project(
    db: Annotated[Session, Depends(get_db)],
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
    manager: Annotated[AssetLifecycleManager, Depends(get_asset_manager)],
    settings: Annotated[Settings, Depends(get_app_settings)],
    audio: Annotated[UploadFile | None, File()] = None,
    name: Annotated[str | None, Form()] = None,
) -> ProjectResponse:
    """
    Upload an audio recording as a new project owned by the caller.

    Send `multipart/form-data` with an `audio` file field and an optional
    `name` (defaults to "Untitled Project"). The audio is stored in the active
    backend before the row is written.
    """
    if audio is None:
        raise ValidationFailed("Audio file is required")
    if audio.size is not None and audio.size > settings.MAX_AUDIO_UPLOAD_BYTES:
        raise ValidationFailed(
            f"Audio file must not exceed {settings.MAX_AUDIO_UPLOAD_BYTES // (1024 * 1024)} MB."
        )
    inbound = InboundAudio(
        file=audio.file,
        filename=audio.filename or "",
        content_type=audio.content_type or "application/octet-stream",
        size=audio.size,
    )
    try:
        project = await manager.create_audio_project(db, current_user, name, inbound)
    finally:
        await audio.close()
    return _to_response(project, current_user.username)


@router.get("", response_model=list[ProjectResponse])
def list_projects(
    db: Annotated[Session, Depends(get_db)],
) -> list[ProjectResponse]:
    """All projects, newest first. No authentication required."""
    rows = _with_owner_query(db).order_by(Project.created_at.desc(), Project.id.desc()).all()
    return [_to_response(project, owner_username) for project, owner_username in rows]


@router.get("/{project_id}", response_model=ProjectResponse)
def get_project(
    project_id: int,
    db: Annotated[Session, Depends(get_db)],
) -> ProjectResponse:
    return load_project_response(db, project_id)


@router.put("/{project_id}", response_model=ProjectResponse)
def rename_project(
    project_id: int,
    body: ProjectUpdateRequest,
    db: Annotated[Session, Depends(get_db)],
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
) -> ProjectResponse:
    """Rename a project (owner or admin)."""
    new_name = clean_project_name(body.name, default=None)
    project = get_project_for_write(db, project_id, current_user)
    project.name = new_name
    db.commit()
    return load_project_response(db, project_id)


@router.delete("/{project_id}", response_model=DeleteResponse)
async def delete_project(
    project_id: int,
    db: Annotated[Session, Depends(get_db)],
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
    manager: Annotated[AssetLifecycleManager, Depends(get_asset_manager)],
) -> DeleteResponse:
    """Delete the project row, then its audio and cover (failures there are logged only)."""
    project = get_project_for_write(db, project_id, current_user)
    await manager.delete_project(db, project)
    return DeleteResponse(ok=True)
