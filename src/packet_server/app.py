"""Application factory and CLI entry point.

``create_app()`` builds the FastAPI application with:
  - Lifespan handler that loads the catalog and builds the job queue,
    worker pool and queue monitor once
  - CORS middleware
  - Global exception handlers (IntakeValidationError → 422, SDK
    ValueError → 404/409/400)
  - All API routes mounted under ``/api/v1``
  - A ``/health`` endpoint for readiness probes

The ``cli()`` function is the ``packetgen-server`` console-script entry point.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from packet_pipeline.adapters import LoggingNotifier, MemoryPacketSink
from packet_pipeline.catalog import CatalogStore
from packet_pipeline.errors import IntakeValidationError
from packet_pipeline.generator import PacketGenerator
from packet_pipeline.intake import IntakeService
from packet_pipeline.interfaces import PacketSink
from packet_pipeline.queue import (
    InMemoryJobStore,
    JobQueue,
    JobStore,
    MonitorThresholds,
    QueueMonitor,
    WorkerPool,
)

from packet_server.config import ServerSettings, load_settings
from packet_server.errors import (
    generic_error_handler,
    intake_validation_error_handler,
    key_error_handler,
    value_error_handler,
)
from packet_server.routes import register_routes

logger = logging.getLogger(__name__)


def _build_storage(settings: ServerSettings) -> tuple[JobStore, PacketSink]:
    if settings.job_store == "sql":
        # Lazy import so the in-memory mode never loads DB machinery
        from packet_db.repository import SqlJobStore, SqlPacketSink

        return SqlJobStore(), SqlPacketSink()
    if settings.job_store != "memory":
        raise ValueError(f"Unknown SERVER_JOB_STORE {settings.job_store!r}")
    return InMemoryJobStore(), MemoryPacketSink(export_dir=settings.export_dir)


# ------------------------------------------------------------------
# Lifespan: runs once at startup/shutdown
# ------------------------------------------------------------------

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Initialise shared resources at startup, tear down on shutdown.

    Startup:
      1. Load the YAML catalog into a ``CatalogStore``
      2. Build the job store, packet sink, queue and intake service
      3. Start the worker pool and queue monitor (unless disabled)
      4. Stash everything on ``app.state`` for dependency injection

    Shutdown:
      1. Stop the monitor and drain the worker pool
      2. Dispose the database engine's connection pool (SQL mode)
    """
    settings: ServerSettings = app.state.settings

    # --- Catalog ---
    catalog = CatalogStore(catalog_dir=settings.catalog_dir)
    catalog.load()

    # --- Queue and services ---
    store, sink = _build_storage(settings)
    notifier = LoggingNotifier()
    queue = JobQueue(store, notifier=notifier, active_lease=settings.active_lease)
    if settings.active_lease <= settings.job_timeout:
        logger.warning(
            "active_lease (%gs) does not exceed job_timeout (%gs); "
            "slow attempts may be reclaimed while still running",
            settings.active_lease, settings.job_timeout,
        )
    intake = IntakeService(catalog, queue, hidden_answer_policy=settings.hidden_answer_policy)
    pool = WorkerPool(
        queue,
        PacketGenerator(catalog),
        sink,
        notifier,
        size=settings.worker_count,
        job_timeout=settings.job_timeout,
    )
    monitor = QueueMonitor(
        store,
        MonitorThresholds(stuck_active_seconds=settings.active_lease),
        clock=queue.clock,
    )

    app.state.catalog = catalog
    app.state.queue = queue
    app.state.intake = intake
    app.state.pool = pool
    app.state.monitor = monitor

    if settings.run_workers:
        await pool.start()
        await monitor.start(settings.monitor_interval)
    logger.info(
        "Packet server ready (store=%s, workers=%s)",
        settings.job_store, settings.worker_count if settings.run_workers else 0,
    )

    yield

    # --- Shutdown ---
    await monitor.stop()
    await pool.stop()
    if settings.job_store == "sql":
        from packet_db.engine import dispose_engine

        await dispose_engine()
        logger.info("Database engine disposed")


# ------------------------------------------------------------------
# Factory
# ------------------------------------------------------------------

def create_app(settings: ServerSettings | None = None) -> FastAPI:
    """Build and return the configured FastAPI application."""
    if settings is None:
        settings = load_settings()

    # --- Configure logging ---
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    app = FastAPI(
        title="Packet Generation API",
        description="Client intake and personalized packet generation",
        version="0.1.0",
        lifespan=lifespan,
    )

    # Store settings so the lifespan handler can read them
    app.state.settings = settings

    # --- CORS ---
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # --- Exception handlers ---
    app.add_exception_handler(IntakeValidationError, intake_validation_error_handler)
    app.add_exception_handler(ValueError, value_error_handler)
    app.add_exception_handler(KeyError, key_error_handler)
    app.add_exception_handler(Exception, generic_error_handler)

    # --- Health check (outside /api/v1 prefix) ---
    @app.get("/health")
    async def health() -> dict:
        """Readiness probe — reports the queue health status."""
        try:
            report = await app.state.monitor.check_health()
            return {"status": "ok", "queue": report.status}
        except Exception as exc:
            logger.error("Health check failed: %s", exc)
            return {"status": "error", "detail": "queue unavailable"}

    # --- Mount all API routes ---
    register_routes(app)

    return app


# ------------------------------------------------------------------
# Module-level ASGI export (for uvicorn packet_server.app:app)
# ------------------------------------------------------------------
app = create_app()


# ------------------------------------------------------------------
# CLI entry point
# ------------------------------------------------------------------

def cli() -> None:
    """Console-script entry point: ``packetgen-server``."""
    import uvicorn

    settings = load_settings()
    uvicorn.run(
        "packet_server.app:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
        reload=False,
    )
