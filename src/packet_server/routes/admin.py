"""Admin endpoints — queue statistics, health, and archival.

Protected by the ``ADMIN_API_KEY`` environment variable.  Every request
must include an ``X-Admin-Key`` header whose value matches the configured
key.  Returns 401 if missing, 403 if wrong.
"""

from datetime import timedelta

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from packet_pipeline.models.job import HealthReport, JobStats
from packet_pipeline.queue import JobQueue, QueueMonitor

from packet_server.config import DEFAULT_ARCHIVE_DAYS
from packet_server.dependencies import get_monitor, get_queue, require_admin_key

router = APIRouter(prefix="/admin", tags=["admin"])


# ------------------------------------------------------------------
# Response models
# ------------------------------------------------------------------

class QueueHealth(BaseModel):
    report: HealthReport
    summary: str


class ArchiveResult(BaseModel):
    """Response body for archival operations."""
    affected_rows: int
    older_than_days: int


# ------------------------------------------------------------------
# Endpoints
# ------------------------------------------------------------------

@router.get("/queue/stats")
async def queue_stats(
    queue: JobQueue = Depends(get_queue),
    _admin: str = Depends(require_admin_key),
) -> JobStats:
    """Current job counts per state."""
    return await queue.stats()


@router.get("/queue/health")
async def queue_health(
    monitor: QueueMonitor = Depends(get_monitor),
    _admin: str = Depends(require_admin_key),
) -> QueueHealth:
    """Run a health check now (backlog, failure rate, stall)."""
    report = await monitor.check_health()
    return QueueHealth(report=report, summary=report.summary)


@router.post("/archive")
async def archive_jobs(
    older_than_days: int = Query(DEFAULT_ARCHIVE_DAYS, ge=0),
    queue: JobQueue = Depends(get_queue),
    _admin: str = Depends(require_admin_key),
) -> ArchiveResult:
    """Delete finished jobs older than the threshold.

    Rendered packets are kept; only the job rows are removed.
    """
    cutoff = queue.clock() - timedelta(days=older_than_days)
    affected = await queue.store.archive_terminal(older_than=cutoff)
    return ArchiveResult(affected_rows=affected, older_than_days=older_than_days)
