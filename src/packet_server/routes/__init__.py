"""Route registration — mounts all routers under ``/api/v1``."""

from fastapi import FastAPI

from packet_server.routes.admin import router as admin_router
from packet_server.routes.intake import router as intake_router
from packet_server.routes.jobs import router as jobs_router

API_PREFIX = "/api/v1"


def register_routes(app: FastAPI) -> None:
    """Include all sub-routers under the versioned API prefix."""
    app.include_router(intake_router, prefix=API_PREFIX)
    app.include_router(jobs_router, prefix=API_PREFIX)
    app.include_router(admin_router, prefix=API_PREFIX)
