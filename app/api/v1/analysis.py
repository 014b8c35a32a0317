"""AI endpoints: analyze a project's audio and generate its cover (owner or admin)."""

from typing import Annotated

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.api.v1.auth import get_current_user
from app.api.v1.dependencies import get_app_settings, get_asset_manager
from app.api.v1.projects import load_project_response
from app.core.config import Settings
from app.core.database import get_db
from app.schemas.auth import CurrentUser
from app.schemas.project import ProjectResponse
from app.services.access import get_project_for_write
from app.services.analysis import analyze_project, generate_cover
from app.services.assets import AssetLifecycleManager

router = APIRouter()


@router.post("/transcribe/{project_id}", response_model=ProjectResponse)
async def post_transcribe(
    project_id: int,
    db: Annotated[Session, Depends(get_db)],
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
    manager: Annotated[AssetLifecycleManager, Depends(get_asset_manager)],
    settings: Annotated[Settings, Depends(get_app_settings)],
) -> ProjectResponse:
    """
    Analyze the project's audio and store the text in transcription and emotional_analysis.

    Without OPENROUTER_API_KEY, or when the AI call fails, placeholder text is stored.
    """
    project = get_project_for_write(db, project_id, current_user)
    await analyze_project(db, manager, project, settings)
    return load_project_response(db, project_id)


@router.post("/generate-cover/{project_id}", response_model=ProjectResponse)
async def post_generate_cover(
    project_id: int,
    db: Annotated[Session, Depends(get_db)],
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
    manager: Annotated[AssetLifecycleManager, Depends(get_asset_manager)],
    settings: Annotated[Settings, Depends(get_app_settings)],
) -> ProjectResponse:
    """
    Generate a cover image from the analysis and replace the current cover.

    Requires a prior analysis. The previous cover is deleted only after the
    new pointer has been committed.
    """
    project = get_project_for_write(db, project_id, current_user)
    await generate_cover(db, manager, project, settings)
    return load_project_response(db, project_id)
