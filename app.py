"""
app.py — FastAPI application factory and startup lifecycle.

This is the ASGI application object imported by uvicorn.
It wires all services, registers routers, and runs startup initialization.

Usage (via launcher):
    python main.py

Usage (direct uvicorn):
    uvicorn app:app --reload
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from backend.controllers.assistant_controller import router as assistant_router
from backend.controllers.slot_controller import router as slot_router
from backend.repository.kv_store import KeyValueRepository
from backend.repository.session_log import SessionLogRepository
from backend.services.dashboard_service import DashboardService
from backend.services.forecast_service import RushForecastService
from backend.services.occupancy_service import OccupancyStateMachine
from backend.services.query_service import QueryResolver
from backend.services.registry_service import SlotRegistryService
from backend.services.session_publisher import SessionEventPublisher
from backend.utils.config import Settings, get_settings
from backend.utils.logger import get_logger


logger = get_logger(__name__)


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """
    Build and wire the FastAPI application.

    Instantiates all services with explicit dependency injection via app.state.
    The session log is optional: without it toggles still work locally and
    the forecast reports itself as disabled.
    """
    settings = settings or get_settings()

    # --- Repositories ---
    repository = KeyValueRepository(settings)
    session_log = SessionLogRepository(settings) if settings.session_log_enabled else None

    # --- Services ---
    registry_service = SlotRegistryService(repository=repository, settings=settings)
    publisher = SessionEventPublisher(session_log=session_log)
    occupancy_service = OccupancyStateMachine(
        registry_service=registry_service,
        publisher=publisher,
    )
    forecast_service = RushForecastService(session_log=session_log, settings=settings)
    resolver = QueryResolver()
    dashboard_service = DashboardService(
        repository=repository,
        registry_service=registry_service,
        forecast_service=forecast_service,
        resolver=resolver,
        settings=settings,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Run startup initialization before accepting requests."""
        _startup(app)
        yield
        _shutdown(app)

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        lifespan=lifespan,
    )

    # --- Routers ---
    app.include_router(slot_router)
    app.include_router(assistant_router)

    # --- Inject services into app.state for dependency resolution ---
    app.state.settings = settings
    app.state.repository = repository
    app.state.session_log = session_log
    app.state.registry_service = registry_service
    app.state.session_publisher = publisher
    app.state.occupancy_service = occupancy_service
    app.state.forecast_service = forecast_service
    app.state.dashboard_service = dashboard_service

    return app


def _startup(app: FastAPI) -> None:
    """
    Idempotent startup sequence. Safe to re-run on server restarts.

    Order matters:
      1. Key-value schema must exist before the registry is read.
      2. The registry is loaded (and repaired) so capacity is known.
      3. Synthetic sessions are seeded last and only into an empty log.
    """
    settings: Settings = app.state.settings
    repository: KeyValueRepository = app.state.repository
    session_log: Optional[SessionLogRepository] = app.state.session_log
    registry_service: SlotRegistryService = app.state.registry_service

    logger.info("Startup: initializing key-value store")
    repository.initialize_database()

    logger.info("Startup: loading slot registry")
    registry = registry_service.load()

    if session_log is None:
        logger.info("Startup: session log disabled; rush forecast unavailable")
    else:
        logger.info("Startup: initializing session log")
        session_log.initialize_database()
        if settings.synthetic_seed_enabled:
            logger.info("Startup: seeding synthetic session history (skipped if not empty)")
            session_log.seed_synthetic_sessions(registry.total, registry_service.now())

    logger.info("Startup complete | total_slots=%s", registry.total)


def _shutdown(app: FastAPI) -> None:
    """Drain background session writes and stop worker pools."""
    publisher: SessionEventPublisher = app.state.session_publisher
    forecast_service: RushForecastService = app.state.forecast_service
    dashboard_service: DashboardService = app.state.dashboard_service

    publisher.flush(timeout=5.0)
    publisher.shutdown()
    forecast_service.shutdown()
    dashboard_service.close()
    logger.info("Shutdown complete")


# Module-level app object for uvicorn
app = create_app()
