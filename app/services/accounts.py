"""User accounts: registration, credential checks and the startup admin bootstrap."""

import logging
from functools import lru_cache
from typing import TYPE_CHECKING

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.errors import AuthenticationMissing, Conflict, ValidationFailed
from app.core.security import (
    hash_password,
    needs_rehash,
    normalize_username,
    validate_password,
    verify_password,
)
from app.models import ROLE_ADMIN, ROLE_USER, User

if TYPE_CHECKING:
    from app.core.config import Settings

logger = logging.getLogger(__name__)

INVALID_CREDENTIALS = "Invalid username or password"


@lru_cache(maxsize=1)
def _dummy_hash() -> str:
    # Verified against when the username is unknown so both paths cost one derivation.
    return hash_password("dummy-password-for-timing")


def _validated_credentials(username: object, password: object) -> tuple[str, str]:
    normalized = normalize_username(username)
    valid_password = validate_password(password)
    if normalized is None or valid_password is None:
        raise ValidationFailed(INVALID_CREDENTIALS)
    return normalized, valid_password


def register_user(db: Session, username: object, password: object) -> User:
    """Create a 'user' account. Raises ValidationFailed or Conflict (username taken)."""
    normalized, valid_password = _validated_credentials(username, password)
    if db.query(User.id).filter(User.username == normalized).first() is not None:
        raise Conflict("Username already taken")
    user = User(
        username=normalized,
        password_hash=hash_password(valid_password),
        role=ROLE_USER,
    )
    db.add(user)
    try:
        db.commit()
    except IntegrityError as e:
        # Concurrent registration of the same username.
        db.rollback()
        raise Conflict("Username already taken") from e
    db.refresh(user)
    return user


def authenticate(db: Session, username: object, password: object) -> User:
    """
    Return the user for valid credentials.

    Unknown user and wrong password raise the same error. Legacy (bcrypt)
    records are upgraded to scrypt on successful login.
    """
    normalized, valid_password = _validated_credentials(username, password)
    user = db.query(User).filter(User.username == normalized).first()
    if user is None:
        verify_password(valid_password, _dummy_hash())
        raise AuthenticationMissing(INVALID_CREDENTIALS)
    if not verify_password(valid_password, user.password_hash):
        raise AuthenticationMissing(INVALID_CREDENTIALS)
    if needs_rehash(user.password_hash):
        user.password_hash = hash_password(valid_password)
        db.commit()
        logger.info("Upgraded password hash", extra={"user_id": user.id})
    return user


def ensure_admin_user(db: Session, settings: "Settings") -> str | None:
    """
    Create or promote the configured admin. Returns 'created', 'promoted' or None.

    Skipped when ADMIN_USERNAME/ADMIN_PASSWORD are unset or invalid.
    """
    if settings.ADMIN_USERNAME is None or settings.ADMIN_PASSWORD is None:
        return None
    username = normalize_username(settings.ADMIN_USERNAME)
    password = validate_password(settings.ADMIN_PASSWORD.get_secret_value())
    if username is None or password is None:
        logger.warning("ADMIN_USERNAME or ADMIN_PASSWORD is invalid; skipping admin bootstrap.")
        return None

    existing = db.query(User).filter(User.username == username).first()
    if existing is None:
        db.add(User(username=username, password_hash=hash_password(password), role=ROLE_ADMIN))
        db.commit()
        logger.info("Admin user created: %s", username)
        return "created"
    if existing.role != ROLE_ADMIN:
        existing.role = ROLE_ADMIN
        db.commit()
        logger.info("User promoted to admin: %s", username)
        return "promoted"
    return None
