"""Write authorization against project ownership and role."""

from sqlalchemy.orm import Session

from app.core.errors import AuthenticationMissing, AuthorizationDenied, NotFound
from app.models import ROLE_ADMIN, Project
from app.schemas.auth import CurrentUser


def authorize_write(principal: CurrentUser | None, project: Project | None) -> Project:
    """
    Return project when principal may mutate it.

    Order of checks: project exists, principal present, principal owns the
    project or is an admin. Reads need none of this.
    """
    if project is None:
        raise NotFound("Project not found")
    if principal is None:
        raise AuthenticationMissing()
    if principal.role != ROLE_ADMIN and project.user_id != principal.id:
        raise AuthorizationDenied()
    return project


def get_project_for_write(db: Session, project_id: int, principal: CurrentUser | None) -> Project:
    project = db.query(Project).filter(Project.id == project_id).first()
    return authorize_write(principal, project)
