"""
FastAPI app entrypoint.

The lifespan owns the storage handle (engine + session factory on app.state, disposed at
shutdown) and the scheduler that keeps time slots materialized ahead.
"""
import logging
import threading
from contextlib import asynccontextmanager
from pathlib import Path

from apscheduler.schedulers.background import BackgroundScheduler
from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

# Load .env from backend/ before any app code
load_dotenv(Path(__file__).resolve().parent.parent / ".env")

from tablebook.api.routes import bookings, branches, overrides, slots
from tablebook.config import settings
from tablebook.core.constants import MATERIALIZE_JOB_ID
from tablebook.core.errors import BookingError, booking_error_handler
from tablebook.db.session import build_engine, build_session_factory
from tablebook.scheduler.materialize_job import run_materialize_job

logging.basicConfig(level=settings.log_level.upper(), format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)

# CORS: dev origins + optional CORS_ORIGINS env (comma-separated) for the production frontend
_DEV_CORS_ORIGINS = [
    "http://localhost:5173",
    "http://127.0.0.1:5173",
    "http://localhost:3000",
    "http://127.0.0.1:3000",
]


def _start_scheduler(session_factory) -> BackgroundScheduler:
    scheduler = BackgroundScheduler()
    scheduler.add_job(
        run_materialize_job,
        "cron",
        hour=settings.materialize_cron_hour,
        minute=settings.materialize_cron_minute,
        id=MATERIALIZE_JOB_ID,
        args=[session_factory],
    )
    scheduler.start()

    def startup_background():
        # One run on startup so a fresh deploy has slots before the first cron tick.
        try:
            run_materialize_job(session_factory)
        except Exception as e:
            logger.warning("Materialize job on startup failed: %s", e, exc_info=True)

    threading.Thread(target=startup_background, daemon=True).start()
    return scheduler


def create_app(database_url: str | None = None, scheduler_enabled: bool | None = None) -> FastAPI:
    """Build the app. Tests pass their own database_url and turn the scheduler off."""
    db_url = database_url or settings.database_url
    run_scheduler = settings.scheduler_enabled if scheduler_enabled is None else scheduler_enabled

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        engine = build_engine(db_url)
        app.state.engine = engine
        app.state.session_factory = build_session_factory(engine)
        scheduler = _start_scheduler(app.state.session_factory) if run_scheduler else None
        app.state.scheduler = scheduler
        logger.info("Backend ready (scheduler %s)", "on" if scheduler else "off")
        try:
            yield
        finally:
            if scheduler is not None:
                scheduler.shutdown(wait=False)
            engine.dispose()

    app = FastAPI(title="Tablebook", version="0.1.0", lifespan=lifespan)

    cors_origins = list(_DEV_CORS_ORIGINS)
    if settings.cors_origins:
        cors_origins.extend(o.strip() for o in settings.cors_origins.split(",") if o.strip())
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(BookingError, booking_error_handler)

    app.include_router(branches.router, prefix="/api", tags=["branches"])
    app.include_router(slots.router, prefix="/api", tags=["slots"])
    app.include_router(overrides.router, prefix="/api", tags=["overrides"])
    app.include_router(bookings.router, prefix="/api", tags=["bookings"])

    @app.get("/", include_in_schema=False)
    def root():
        """Root: point to API docs and health."""
        return {"message": "Tablebook API", "docs": "/docs", "health": "/health"}

    @app.get("/health")
    def health() -> dict[str, str]:
        return {"status": "ok"}

    return app


app = create_app()
