"""FastAPI application factory. No business logic; only wiring and middleware.

Run with: uvicorn --factory app.main:create_app
"""

from datetime import timedelta

from dotenv import load_dotenv

load_dotenv()

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
from sqlalchemy.orm import Session, sessionmaker

from app.api.v1 import router as v1_router
from app.core.config import Settings, get_settings
from app.core.database import build_engine, build_session_factory
from app.core.exception_handlers import register_exception_handlers
from app.core.lifespan import create_lifespan
from app.services.assets import AssetLifecycleManager
from app.services.sessions import SessionStore
from app.services.storage import StorageFactory


def create_app(
    settings: Settings | None = None,
    session_factory: sessionmaker[Session] | None = None,
) -> FastAPI:
    """
    Build the app and every shared component once.

    settings and session_factory may be injected (tests); otherwise they come
    from the environment and DATABASE_URL.
    """
    settings = settings or get_settings()
    engine = None
    if session_factory is None:
        engine = build_engine(settings)
        session_factory = build_session_factory(engine)

    uploads = StorageFactory.create_local_storage(settings)
    storage = StorageFactory.create_storage_backend(settings, local=uploads)

    app = FastAPI(
        title="Sleeve API",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=create_lifespan,
    )
    app.state.settings = settings
    app.state.engine = engine
    app.state.session_factory = session_factory
    app.state.session_store = SessionStore(ttl=timedelta(days=settings.SESSION_TTL_DAYS))
    app.state.asset_manager = AssetLifecycleManager(
        storage=storage,
        uploads=uploads,
        fetch_timeout=settings.COVER_FETCH_TIMEOUT_SEC,
        max_fetch_bytes=settings.MAX_AUDIO_UPLOAD_BYTES,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if settings.APP_ENV == "dev" else [],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    register_exception_handlers(app)

    app.include_router(v1_router, prefix=settings.API_PREFIX)
    app.mount(
        settings.UPLOADS_URL_PREFIX,
        StaticFiles(directory=uploads.root),
        name="uploads",
    )

    @app.get("/")
    def root() -> dict[str, str]:
        """Root route; minimal payload for discovery."""
        return {"message": "Sleeve API"}

    return app
