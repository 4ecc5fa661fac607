"""Server configuration — reads settings from environment variables.

All settings have sensible defaults for local development.  In production
the values are typically overridden via env vars or a ``.env`` file.
"""

import os
from dataclasses import dataclass, field

from packet_pipeline import constants

# --- Pagination & archival defaults ---
# Read at import time so FastAPI Query() defaults can reference them.
DEFAULT_PAGE_LIMIT = int(os.getenv("DEFAULT_PAGE_LIMIT", "20"))
MAX_PAGE_LIMIT = int(os.getenv("MAX_PAGE_LIMIT", "100"))
DEFAULT_ARCHIVE_DAYS = int(os.getenv("DEFAULT_ARCHIVE_DAYS", "30"))


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class ServerSettings:
    """Immutable server configuration read from environment at startup."""

    # Network
    host: str = "0.0.0.0"
    port: int = 8080

    # CORS: comma-separated origins, or "*" for wide-open dev mode
    cors_origins: list[str] = field(default_factory=lambda: ["*"])

    # Catalog directory (None → CatalogStore default, which is v1/ from repo root)
    catalog_dir: str | None = None

    # Logging
    log_level: str = "INFO"

    # Job storage: "memory" (single process) or "sql" (PostgreSQL via packet_db)
    job_store: str = "memory"

    # Worker pool and monitor; run_workers=False serves the API only
    run_workers: bool = True
    worker_count: int = constants.WORKER_COUNT
    job_timeout: float = constants.JOB_TIMEOUT_SECONDS
    # ACTIVE jobs older than this are reclaimed; keep it above job_timeout
    active_lease: float = constants.ACTIVE_LEASE_SECONDS
    monitor_interval: float = constants.MONITOR_INTERVAL_SECONDS

    # "retain" or "purge" answers to questions hidden at submission
    hidden_answer_policy: str = constants.HIDDEN_ANSWER_POLICY

    # With job_store=memory, also write each packet as markdown here
    export_dir: str | None = None

    # Admin API key, shared secret for admin endpoints (None = disabled)
    admin_api_key: str | None = None

    # Trusted proxy secret: when set, every request that carries
    # X-User-ID must also carry X-Proxy-Secret matching this value.
    trusted_proxy_secret: str | None = None


def load_settings() -> ServerSettings:
    """Build settings from ``SERVER_*`` environment variables."""
    raw_origins = os.getenv("SERVER_CORS_ORIGINS", "*")
    origins = [o.strip() for o in raw_origins.split(",") if o.strip()]

    return ServerSettings(
        host=os.getenv("SERVER_HOST", "0.0.0.0"),
        port=int(os.getenv("SERVER_PORT", "8080")),
        cors_origins=origins,
        catalog_dir=os.getenv("SERVER_CATALOG_DIR") or None,
        log_level=os.getenv("SERVER_LOG_LEVEL", "INFO").upper(),
        job_store=os.getenv("SERVER_JOB_STORE", "memory").lower(),
        run_workers=_env_bool("SERVER_RUN_WORKERS", True),
        worker_count=constants.WORKER_COUNT,
        job_timeout=constants.JOB_TIMEOUT_SECONDS,
        active_lease=constants.ACTIVE_LEASE_SECONDS,
        monitor_interval=constants.MONITOR_INTERVAL_SECONDS,
        hidden_answer_policy=constants.HIDDEN_ANSWER_POLICY,
        export_dir=os.getenv("SERVER_EXPORT_DIR") or None,
        admin_api_key=os.getenv("ADMIN_API_KEY") or None,
        trusted_proxy_secret=os.getenv("TRUSTED_PROXY_SECRET") or None,
    )
