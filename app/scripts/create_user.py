"""
Create an account without going through /auth/register.

  python -m app.scripts.create_user USERNAME PASSWORD [user|admin]

Uses DATABASE_URL from the environment (.env honored). Exits 1 on invalid
input or when the username is taken.
"""
import argparse
import sys

from dotenv import load_dotenv
from sqlalchemy.orm import Session

from app.core.config import get_settings
from app.core.database import build_engine, build_session_factory
from app.core.errors import AppError, Conflict, ValidationFailed
from app.core.security import hash_password, normalize_username, validate_password
from app.models import ROLE_ADMIN, ROLE_USER, User


def create_user(db: Session, username: str, password: str, role: str = ROLE_USER) -> User:
    normalized = normalize_username(username)
    if normalized is None:
        raise ValidationFailed("Username must be 3-64 characters")
    if validate_password(password) is None:
        raise ValidationFailed("Password must be 6-200 characters")
    if db.query(User.id).filter(User.username == normalized).first() is not None:
        raise Conflict(f"User '{normalized}' already exists")
    user = User(username=normalized, password_hash=hash_password(password), role=role)
    db.add(user)
    db.commit()
    return user


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(prog="create_user", description=__doc__.strip().splitlines()[0])
    parser.add_argument("username")
    parser.add_argument("password")
    parser.add_argument("role", nargs="?", default=ROLE_USER, choices=(ROLE_USER, ROLE_ADMIN))
    args = parser.parse_args(argv)

    load_dotenv()
    engine = build_engine(get_settings())
    db = build_session_factory(engine)()
    try:
        user = create_user(db, args.username, args.password, args.role)
        summary = f"Created {user.role} '{user.username}' (id={user.id})."
    except AppError as e:
        print(e.message, file=sys.stderr)
        return 1
    finally:
        db.close()
        engine.dispose()
    print(summary)
    return 0


if __name__ == "__main__":
    sys.exit(main())
