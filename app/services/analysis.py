"""AI enrichment of projects: analysis text and cover generation, with placeholder fallbacks."""

import logging
from typing import TYPE_CHECKING

from sqlalchemy.orm import Session

from app.core.errors import UpstreamFailure, ValidationFailed
from app.models import Project
from app.services import ai
from app.services.assets import AssetLifecycleManager

if TYPE_CHECKING:
    from app.core.config import Settings

logger = logging.getLogger(__name__)


async def analyze_project(
    db: Session,
    manager: AssetLifecycleManager,
    project: Project,
    settings: "Settings",
) -> Project:
    """
    Run audio analysis and store the result.

    The same text goes into transcription and emotional_analysis. AI failures
    (including a missing API key) store the placeholder analysis instead.
    Audio that cannot be loaded is an error, not a fallback.
    """
    audio = await manager.load_audio(project)
    try:
        text = await ai.analyze_audio(audio.data, audio.mime_type, audio.filename, settings)
    except UpstreamFailure as e:
        logger.warning(
            "Audio analysis unavailable; using placeholder",
            extra={"project_id": project.id, "reason": e.message},
        )
        text = ai.PLACEHOLDER_ANALYSIS

    project.transcription = text
    project.emotional_analysis = text
    db.commit()
    db.refresh(project)
    return project


async def generate_cover(
    db: Session,
    manager: AssetLifecycleManager,
    project: Project,
    settings: "Settings",
) -> Project:
    """Generate a cover from the analysis text and make it the project's current cover."""
    analysis_text = project.emotional_analysis or project.transcription
    if not analysis_text:
        raise ValidationFailed("Audio analysis required for cover generation")

    prompt = ai.build_cover_prompt(analysis_text)
    try:
        source_url = await ai.generate_cover_image(prompt, settings)
    except UpstreamFailure as e:
        logger.warning(
            "Cover generation unavailable; using placeholder image service",
            extra={"project_id": project.id, "reason": e.message},
        )
        source_url = ai.fallback_cover_url(prompt, settings)

    return await manager.replace_cover(db, project, source_url)
