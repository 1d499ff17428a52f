"""
app.py — FastAPI application factory and startup lifecycle.

Wires the reference repository, the backend gateway and the tape chart
engine, registers routers, and loads the default view before serving.

Usage (via launcher):
    python main.py

Usage (direct uvicorn):
    uvicorn app:app --reload
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI

from tapechart.controllers.calendar_controller import router as calendar_router
from tapechart.controllers.operation_controller import router as operation_router
from tapechart.domain.models import DateRange
from tapechart.repository.data_repository import DataRepository
from tapechart.services.backend_gateway import RepositoryGateway
from tapechart.services.engine import TapeChartEngine
from tapechart.utils.config import Settings, get_settings
from tapechart.utils.logger import get_logger


logger = get_logger(__name__)


def create_app(settings: Settings | None = None) -> FastAPI:
    """
    Build and wire the FastAPI application.

    Every dependency is created here and published on app.state; routes
    resolve them through `tapechart.controllers.dependencies`.
    """
    settings = settings or get_settings()

    repository = DataRepository(settings)
    gateway = RepositoryGateway(repository)
    engine = TapeChartEngine(gateway=gateway, settings=settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Run startup initialization before accepting requests."""
        await _startup(app)
        yield

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        lifespan=lifespan,
    )

    app.include_router(calendar_router)
    app.include_router(operation_router)

    @app.get("/health")
    async def health() -> dict[str, object]:
        calendar = engine.calendar
        return {
            "status": "ok",
            "calendar_loaded": calendar.is_loaded,
            "calendar_stale": calendar.is_stale,
            "view_id": engine.view_id,
            "operation_state": engine.manager.state.value,
            "undo_depth": len(engine.manager.history),
        }

    app.state.settings = settings
    app.state.repository = repository
    app.state.gateway = gateway
    app.state.engine = engine

    return app


async def _startup(app: FastAPI) -> None:
    """
    Idempotent startup sequence. Safe to re-run on server restarts.

    Schema first, then the synthetic hotel (skipped when rooms exist), then
    the default view is loaded so the first request sees a populated chart.
    """
    settings: Settings = app.state.settings
    repository: DataRepository = app.state.repository
    engine: TapeChartEngine = app.state.engine

    logger.info("Startup: initializing database schema")
    repository.initialize_database()

    logger.info("Startup: seeding synthetic hotel")
    repository.seed_synthetic_data()

    view_id = settings.default_view_id
    days = repository.get_view_default_days(view_id)
    start = datetime.now(timezone.utc).date()
    logger.info("Startup: loading view %s for %s days", view_id, days)
    await engine.refresh(view_id, DateRange.from_start(start, days))

    logger.info("Startup complete: tape chart ready")


# Module-level app object for uvicorn
app = create_app()
