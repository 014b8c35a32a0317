"""Delete expired login sessions once and exit.

The web process already sweeps at startup and every
SESSION_SWEEP_INTERVAL_MINUTES; this entry point is for deployments that
disable the in-process sweeper (interval 0) and schedule it instead:

  */30 * * * * cd /srv/sleeve && .venv/bin/python -m app.sweep_sessions
"""

import argparse
import logging
import sys
import time
from datetime import timedelta

from app.core.config import get_settings
from app.core.database import build_engine, build_session_factory
from app.core.lifespan import sweep_sessions_once
from app.services.sessions import SessionStore

logger = logging.getLogger(__name__)


def _configure_logging(verbose: bool) -> None:
    handler = logging.StreamHandler()
    formatter = logging.Formatter(
        "%(asctime)s %(levelname)s %(name)s %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%SZ",
    )
    formatter.converter = time.gmtime
    handler.setFormatter(formatter)
    root = logging.getLogger()
    root.addHandler(handler)
    root.setLevel(logging.DEBUG if verbose else logging.INFO)


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(prog="sweep_sessions", description="Delete expired sessions.")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    args = parser.parse_args(argv)
    _configure_logging(args.verbose)

    settings = get_settings()
    engine = build_engine(settings)
    store = SessionStore(ttl=timedelta(days=settings.SESSION_TTL_DAYS))
    try:
        deleted = sweep_sessions_once(build_session_factory(engine), store)
    except Exception as e:
        logger.exception("Session sweep aborted: %s", e)
        return 1
    finally:
        engine.dispose()
    logger.info("Expired sessions removed: %s", deleted)
    return 0


if __name__ == "__main__":
    sys.exit(main())
