"""API v1 routes."""

from fastapi import APIRouter

from app.api.v1 import analysis, auth, health, projects

router = APIRouter()
router.include_router(health.router, prefix="/health", tags=["health"])
router.include_router(auth.router, prefix="/auth", tags=["auth"])
router.include_router(projects.router, prefix="/projects", tags=["projects"])
router.include_router(analysis.router, tags=["analysis"])
