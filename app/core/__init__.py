"""Core app configuration, database and error taxonomy."""

from app.core.config import Settings, get_settings
from app.core.database import build_engine, build_session_factory, get_db
from app.core.errors import AppError, ErrorKind

__all__ = [
    "AppError",
    "ErrorKind",
    "Settings",
    "build_engine",
    "build_session_factory",
    "get_db",
    "get_settings",
]
