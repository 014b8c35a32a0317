"""Session store: opaque bearer token issuance, lookup, revocation and expiry sweep."""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from sqlalchemy.orm import Session

from app.core.security import generate_session_token, hash_session_token
from app.models import AuthSession, User
from app.schemas.auth import CurrentUser

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class IssuedSession:
    """Raw token handed to the client exactly once, plus its expiry."""

    token: str
    expires_at: datetime


class SessionStore:
    """
    Opaque-token sessions backed by the ``sessions`` table.

    Only token hashes are persisted. Expiry is fixed at issuance (no sliding
    renewal). ``clock`` is injectable so expiry can be tested deterministically.
    """

    def __init__(
        self,
        ttl: timedelta,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        if ttl <= timedelta(0):
            raise ValueError("Session TTL must be positive")
        self.ttl = ttl
        self._clock = clock

    def issue(self, db: Session, user: User) -> IssuedSession:
        """Persist a new session for user and return the raw token."""
        token = generate_session_token()
        expires_at = self._clock() + self.ttl
        db.add(
            AuthSession(
                token_hash=hash_session_token(token),
                user_id=user.id,
                expires_at=expires_at,
            )
        )
        db.commit()
        return IssuedSession(token=token, expires_at=expires_at)

    def resolve(self, db: Session, raw_token: str) -> CurrentUser | None:
        """
        Return the principal for a live token, else None.

        Unknown, revoked and expired tokens take the same single query and
        produce the same None result.
        """
        row = (
            db.query(User.id, User.username, User.role)
            .join(AuthSession, AuthSession.user_id == User.id)
            .filter(
                AuthSession.token_hash == hash_session_token(raw_token or ""),
                AuthSession.expires_at > self._clock(),
            )
            .first()
        )
        if row is None:
            return None
        return CurrentUser(id=row.id, username=row.username, role=row.role)

    def revoke(self, db: Session, raw_token: str) -> None:
        """Delete the session for raw_token. Unknown or already revoked tokens are a no-op."""
        (
            db.query(AuthSession)
            .filter(AuthSession.token_hash == hash_session_token(raw_token or ""))
            .delete(synchronize_session=False)
        )
        db.commit()

    def sweep(self, db: Session) -> int:
        """Delete all sessions with expires_at <= now. Idempotent; returns rows deleted."""
        now = self._clock()
        deleted_count = (
            db.query(AuthSession)
            .filter(AuthSession.expires_at <= now)
            .delete(synchronize_session=False)
        )
        db.commit()
        if deleted_count > 0:
            logger.info(
                "Session sweep: cutoff=%s, sessions_deleted=%s",
                now.isoformat(),
                deleted_count,
            )
        return deleted_count
