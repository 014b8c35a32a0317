"""Dependencies exposing components built once at startup (held on app.state)."""

from fastapi import Request

from app.core.config import Settings
from app.services.assets import AssetLifecycleManager
from app.services.sessions import SessionStore


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_session_store(request: Request) -> SessionStore:
    return request.app.state.session_store


def get_asset_manager(request: Request) -> AssetLifecycleManager:
    return request.app.state.asset_manager
