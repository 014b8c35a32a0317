"""SQLAlchemy ORM models."""

from app.models.base import Base
from app.models.project import Project
from app.models.session import AuthSession
from app.models.user import ROLE_ADMIN, ROLE_USER, User

__all__ = ["AuthSession", "Base", "Project", "ROLE_ADMIN", "ROLE_USER", "User"]
