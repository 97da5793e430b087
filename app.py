"""
app.py - FastAPI application factory and startup lifecycle.

This is the ASGI application object imported by uvicorn.
It wires the hold engine services, registers routers, and runs the
schema initialization and background sweeper inside the lifespan.

Usage (via launcher):
    python main.py

Usage (direct uvicorn):
    uvicorn app:app --reload
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from hostel_inventory.controllers.admin_controller import router as admin_router
from hostel_inventory.controllers.availability_controller import router as availability_router
from hostel_inventory.controllers.dependencies import register_exception_handlers
from hostel_inventory.controllers.hold_controller import router as hold_router
from hostel_inventory.domain.inventory import Inventory
from hostel_inventory.repository.booking_repository import (
    BookingRepository,
    SqliteBookingRepository,
)
from hostel_inventory.services.availability_service import AvailabilityService
from hostel_inventory.services.channel_import_service import ChannelImportService
from hostel_inventory.services.conflict_resolver import ConflictResolver
from hostel_inventory.services.date_blocker import DateBlocker
from hostel_inventory.services.hold_manager import HoldManager
from hostel_inventory.services.hold_store import HoldStore
from hostel_inventory.services.hold_sweeper import HoldSweeper
from hostel_inventory.utils.clock import Clock, utc_now
from hostel_inventory.utils.config import Settings, get_settings
from hostel_inventory.utils.logger import get_logger


logger = get_logger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    repository: Optional[BookingRepository] = None,
    clock: Optional[Clock] = None,
) -> FastAPI:
    """
    Build and wire the FastAPI application.

    Instantiates all services with explicit dependency injection via app.state.
    The hold registry lives on the HoldStore created here; nothing is module-global.
    """
    settings = settings or get_settings()
    clock = clock or utc_now
    inventory = Inventory(settings.rooms)

    # --- Repository (SQLite booking store unless one is injected) ---
    if repository is None:
        repository = SqliteBookingRepository(settings, clock=clock)

    # --- Services (business logic, no HTTP) ---
    hold_store = HoldStore()
    availability_service = AvailabilityService(
        repository=repository,
        hold_store=hold_store,
        inventory=inventory,
        settings=settings,
        clock=clock,
    )
    hold_manager = HoldManager(
        store=hold_store,
        availability=availability_service,
        repository=repository,
        settings=settings,
        clock=clock,
    )
    conflict_resolver = ConflictResolver(repository=repository, settings=settings)
    date_blocker = DateBlocker(
        repository=repository,
        inventory=inventory,
        settings=settings,
        clock=clock,
        on_change=availability_service.invalidate_cache,
    )
    channel_import_service = ChannelImportService(
        repository=repository,
        resolver=conflict_resolver,
        inventory=inventory,
        settings=settings,
        on_change=availability_service.invalidate_cache,
    )
    sweeper = HoldSweeper(hold_manager, settings.hold_sweep_interval_seconds)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Initialize storage and run the sweeper for the server's lifetime."""
        _startup(app)
        try:
            yield
        finally:
            _shutdown(app)

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        lifespan=lifespan,
    )

    # --- Routers ---
    app.include_router(hold_router)
    app.include_router(availability_router)
    app.include_router(admin_router)
    register_exception_handlers(app)

    # --- Inject services into app.state for dependency resolution ---
    app.state.settings = settings
    app.state.repository = repository
    app.state.hold_store = hold_store
    app.state.availability_service = availability_service
    app.state.hold_manager = hold_manager
    app.state.conflict_resolver = conflict_resolver
    app.state.date_blocker = date_blocker
    app.state.channel_import_service = channel_import_service
    app.state.sweeper = sweeper

    return app


def _startup(app: FastAPI) -> None:
    """
    Idempotent startup sequence. Safe to re-run on server restarts.

    Order matters:
      1. Schema must exist before any request reads bookings.
      2. The sweeper starts last so its first pass sees a ready store.
    """
    repository = app.state.repository
    sweeper: HoldSweeper = app.state.sweeper

    initialize = getattr(repository, "initialize_database", None)
    if initialize is not None:
        logger.info("Startup: initializing booking schema")
        initialize()

    logger.info("Startup: starting hold sweeper")
    sweeper.start()

    logger.info("Startup complete - hold engine ready")


def _shutdown(app: FastAPI) -> None:
    sweeper: HoldSweeper = app.state.sweeper
    logger.info("Shutdown: stopping hold sweeper")
    sweeper.stop()


# Module-level app object for uvicorn
app = create_app()
