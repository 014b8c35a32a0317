"""Session auth endpoints and dependencies (get_optional_user, get_current_user, require_admin)."""

from typing import Annotated

from fastapi import APIRouter, Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from app.api.v1.dependencies import get_session_store
from app.core.database import get_db
from app.core.errors import AuthenticationExpired, AuthenticationMissing, AuthorizationDenied
from app.models import ROLE_ADMIN, User
from app.schemas.auth import (
    CredentialsRequest,
    CurrentUser,
    LogoutResponse,
    MeResponse,
    SessionResponse,
    UserListItem,
    UsersListResponse,
)
from app.services.accounts import authenticate, register_user
from app.services.sessions import SessionStore

router = APIRouter()
security = HTTPBearer(auto_error=False)


def get_optional_user(
    request: Request,
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
    db: Annotated[Session, Depends(get_db)],
    store: Annotated[SessionStore, Depends(get_session_store)],
) -> CurrentUser | None:
    """Dependency: resolve a Bearer token to the principal; None for anonymous or dead tokens."""
    request.state.principal = None
    if credentials is None:
        return None
    principal = store.resolve(db, credentials.credentials)
    request.state.principal = principal
    return principal


def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
    principal: Annotated[CurrentUser | None, Depends(get_optional_user)],
) -> CurrentUser:
    """Dependency: require a live session. Missing and expired tokens both surface as 401."""
    if credentials is None:
        raise AuthenticationMissing()
    if principal is None:
        raise AuthenticationExpired()
    return principal


def require_admin(
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
) -> CurrentUser:
    """Dependency: require authenticated user with role 'admin'. Raises 403 for non-admin."""
    if current_user.role != ROLE_ADMIN:
        raise AuthorizationDenied("Admin access required")
    return current_user


def _session_response(db: Session, store: SessionStore, user: User) -> SessionResponse:
    issued = store.issue(db, user)
    return SessionResponse(
        token=issued.token,
        expires_at=issued.expires_at,
        user=CurrentUser(id=user.id, username=user.username, role=user.role),
    )


@router.post("/register", response_model=SessionResponse)
def register(
    body: CredentialsRequest,
    db: Annotated[Session, Depends(get_db)],
    store: Annotated[SessionStore, Depends(get_session_store)],
) -> SessionResponse:
    """
    Create a 'user' account and log it in.
    The returned token is shown once; send it as: Authorization: Bearer <token>
    """
    user = register_user(db, body.username, body.password)
    return _session_response(db, store, user)


@router.post("/login", response_model=SessionResponse)
def login(
    body: CredentialsRequest,
    db: Annotated[Session, Depends(get_db)],
    store: Annotated[SessionStore, Depends(get_session_store)],
) -> SessionResponse:
    """Authenticate with username and password; issues a new session token."""
    user = authenticate(db, body.username, body.password)
    return _session_response(db, store, user)


@router.post("/logout", response_model=LogoutResponse)
def logout(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
    _user: Annotated[CurrentUser, Depends(get_current_user)],
    db: Annotated[Session, Depends(get_db)],
    store: Annotated[SessionStore, Depends(get_session_store)],
) -> LogoutResponse:
    """Revoke the presented token; other sessions of the same user stay valid."""
    store.revoke(db, credentials.credentials)
    return LogoutResponse(ok=True)


@router.get("/me", response_model=MeResponse)
def me(
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
) -> MeResponse:
    return MeResponse(user=current_user)


@router.get("/users", response_model=UsersListResponse)
def list_users(
    _admin: Annotated[CurrentUser, Depends(require_admin)],
    db: Annotated[Session, Depends(get_db)],
) -> UsersListResponse:
    """List all users (admin only)."""
    users = db.query(User).order_by(User.id).all()
    return UsersListResponse(
        users=[
            UserListItem(id=u.id, username=u.username, role=u.role, created_at=u.created_at)
            for u in users
        ]
    )
