"""Alembic environment for the Sleeve schema.

The database URL comes from application settings (DATABASE_URL, .env
honored); the alembic.ini URL is never used. SQLite runs in batch mode so
column changes work there too.
"""

from logging.config import fileConfig

from alembic import context
from dotenv import load_dotenv
from sqlalchemy import create_engine
from sqlalchemy.pool import NullPool

load_dotenv()

from app.core.config import get_settings
from app.models import AuthSession, Base, Project, User  # noqa: F401  (registers every table)

config = context.config
if config.config_file_name is not None:
    # alembic.ini may omit the logging sections entirely.
    try:
        fileConfig(config.config_file_name)
    except KeyError:
        pass

DATABASE_URL = get_settings().DATABASE_URL
IS_SQLITE = DATABASE_URL.startswith("sqlite")


def _configure(**kwargs: object) -> None:
    context.configure(
        target_metadata=Base.metadata,
        render_as_batch=IS_SQLITE,
        compare_type=True,
        **kwargs,
    )


def run_offline() -> None:
    """Emit SQL to stdout instead of connecting."""
    _configure(url=DATABASE_URL, literal_binds=True, dialect_opts={"paramstyle": "named"})
    with context.begin_transaction():
        context.run_migrations()


def run_online() -> None:
    engine = create_engine(DATABASE_URL, poolclass=NullPool)
    try:
        with engine.connect() as connection:
            _configure(connection=connection)
            with context.begin_transaction():
                context.run_migrations()
    finally:
        engine.dispose()


if context.is_offline_mode():
    run_offline()
else:
    run_online()
