"""Generation job endpoints — enqueue and status.

``POST /jobs`` is the enqueue API: it queues generation for one packet
type and returns the job id (the id of the job already in flight, if there
is one).  The caller must be the client or an admin.  The answers are
validated and frozen exactly as on intake submission, so an invalid
answer set is a 422 and a packet type without a template is a 400.
"""

from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field

from packet_pipeline.intake import IntakeService
from packet_pipeline.models.job import Job, JobState
from packet_pipeline.queue import JobQueue

from packet_server.config import DEFAULT_PAGE_LIMIT, MAX_PAGE_LIMIT
from packet_server.dependencies import (
    Caller,
    ensure_can_generate,
    get_caller,
    get_intake,
    get_queue,
    require_admin_key,
)

router = APIRouter(prefix="/jobs", tags=["jobs"])


# ------------------------------------------------------------------
# Request / response models
# ------------------------------------------------------------------

class EnqueueRequest(BaseModel):
    """Body for POST /jobs."""
    client_id: str
    packet_type: str
    client_type: str
    answers: dict[str, Any]
    hidden_answers: dict[str, Any] = Field(default_factory=dict)


class EnqueueResponse(BaseModel):
    job_id: str


class JobView(BaseModel):
    """Public view of a job; the answer snapshot is not exposed."""
    id: str
    client_id: str
    packet_type: str
    state: JobState
    attempts: int
    max_attempts: int
    last_error: str | None = None
    created_at: datetime
    updated_at: datetime
    next_run_at: datetime | None = None
    finished_at: datetime | None = None
    output_ref: str | None = None
    superseded_by: str | None = None

    @classmethod
    def from_job(cls, job: Job) -> "JobView":
        return cls(**job.model_dump(exclude={"snapshot", "fingerprint", "started_at"}))


# ------------------------------------------------------------------
# Endpoints
# ------------------------------------------------------------------

@router.post("", status_code=202)
async def enqueue(
    body: EnqueueRequest,
    caller: Caller = Depends(get_caller),
    intake: IntakeService = Depends(get_intake),
) -> EnqueueResponse:
    """Queue generation of one packet for a client."""
    ensure_can_generate(caller, body.client_id)
    job_id = await intake.queue_packet(
        body.client_id,
        body.packet_type,
        body.client_type,
        {**body.hidden_answers, **body.answers},
    )
    return EnqueueResponse(job_id=job_id)


@router.get("")
async def list_jobs(
    state: JobState | None = Query(None),
    limit: int = Query(DEFAULT_PAGE_LIMIT, ge=1, le=MAX_PAGE_LIMIT),
    queue: JobQueue = Depends(get_queue),
    _admin: str = Depends(require_admin_key),
) -> list[JobView]:
    """Most recently updated jobs, optionally filtered by state (admin)."""
    jobs = await queue.list_jobs(state=state, limit=limit)
    return [JobView.from_job(j) for j in jobs]


@router.get("/{job_id}")
async def get_job(
    job_id: str,
    caller: Caller = Depends(get_caller),
    queue: JobQueue = Depends(get_queue),
) -> JobView:
    """Job status, visible to its client and to admins."""
    job = await queue.get(job_id)
    if not caller.can_act_for(job.client_id):
        # Same answer as an unknown id so job ids cannot be probed
        raise HTTPException(status_code=404, detail="Resource not found")
    return JobView.from_job(job)


@router.post("/{job_id}/retry", status_code=202)
async def retry_job(
    job_id: str,
    queue: JobQueue = Depends(get_queue),
    _admin: str = Depends(require_admin_key),
) -> EnqueueResponse:
    """Regenerate from a finished job's snapshot (admin).

    409 if the job is still in flight.
    """
    return EnqueueResponse(job_id=await queue.requeue(job_id))
