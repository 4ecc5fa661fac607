"""Async SQLAlchemy engine and session factory for the job store.

One engine per process, created on first use and shared by ``SqlJobStore``
and ``SqlPacketSink``.  Every worker holds a connection while it claims or
finishes a job, so the pool is sized from the worker count unless
``PG_POOL_SIZE`` says otherwise.  Call ``dispose_engine()`` on shutdown.
"""

import logging
import os

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from packet_pipeline import constants

from packet_db.config import DatabaseSettings

logger = logging.getLogger(__name__)

# Workers + API requests + the monitor's periodic stats query
_POOL_SIZE = int(os.getenv("PG_POOL_SIZE", str(constants.WORKER_COUNT + 2)))
_MAX_OVERFLOW = int(os.getenv("PG_MAX_OVERFLOW", "10"))
# asyncpg per-statement timeout, seconds; a hung claim must not outlive the job timeout
_COMMAND_TIMEOUT = float(os.getenv("PG_COMMAND_TIMEOUT", str(constants.JOB_TIMEOUT_SECONDS)))

_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def get_engine() -> AsyncEngine:
    """Return the process-wide engine, creating it on first call."""
    global _engine
    if _engine is None:
        db = DatabaseSettings.from_env()
        logger.info("Creating engine for %s (pool_size=%d)", db.redacted, _POOL_SIZE)
        _engine = create_async_engine(
            db.async_url,
            pool_size=_POOL_SIZE,
            max_overflow=_MAX_OVERFLOW,
            pool_pre_ping=True,
            connect_args={"command_timeout": _COMMAND_TIMEOUT},
        )
    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    global _session_factory
    if _session_factory is None:
        # Rows are converted to pydantic models right after commit
        _session_factory = async_sessionmaker(get_engine(), expire_on_commit=False)
    return _session_factory


async def dispose_engine() -> None:
    """Close pooled connections and forget the engine."""
    global _engine, _session_factory
    if _engine is None:
        return
    await _engine.dispose()
    _engine = None
    _session_factory = None
