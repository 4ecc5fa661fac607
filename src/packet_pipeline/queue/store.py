"""Job storage — the atomic primitives the queue is built on.

Every method that changes state is atomic with respect to concurrent
callers, so the queue never needs a process-wide lock:

  - ``add_unless_in_flight`` enforces "at most one in-flight job per
    (client_id, packet_type)" and supersedes stale queued jobs
  - ``claim_next`` reads and marks a job ACTIVE in one step, so two workers
    can never claim the same job
  - ``transition`` is compare-and-set on the current state
  - ``find_expired_active`` lists ACTIVE jobs whose worker has held them
    past the lease, so the queue can fail them like any other attempt

``InMemoryJobStore`` serialises mutations with an ``asyncio.Lock`` and hands
out copies so callers cannot mutate stored jobs.  ``packet_db.SqlJobStore``
implements the same contract on PostgreSQL.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Collection

from packet_pipeline.errors import InvalidTransitionError, JobNotFoundError
from packet_pipeline.models.job import (
    IN_FLIGHT_STATES,
    Job,
    JobOutcomes,
    JobState,
    JobStats,
    can_transition,
)

logger = logging.getLogger(__name__)

# Only jobs nobody has started yet may be replaced by a newer snapshot
SUPERSEDABLE_STATES: frozenset[JobState] = frozenset(
    {JobState.PENDING, JobState.RETRY_SCHEDULED}
)


@dataclass(frozen=True)
class AddResult:
    """Outcome of ``add_unless_in_flight``."""

    job: Job
    created: bool
    superseded_id: str | None = None


def check_transition(job: Job, from_states: Collection[JobState], to_state: JobState) -> bool:
    """Shared compare-and-set guard.

    Returns False when the job is no longer in one of *from_states* (the
    caller lost a race).  Raises ``InvalidTransitionError`` when the job is
    terminal or the state machine forbids the move.
    """
    if job.is_terminal:
        raise InvalidTransitionError(job.id, job.state.value, to_state.value)
    if job.state not in from_states:
        return False
    if not can_transition(job.state, to_state):
        raise InvalidTransitionError(job.id, job.state.value, to_state.value)
    return True


class JobStore(ABC):
    """Persistence contract for generation jobs."""

    @abstractmethod
    async def add_unless_in_flight(
        self, job: Job, *, now: datetime, supersede_stale: bool = True
    ) -> AddResult:
        """Insert *job* unless its key already has an in-flight job.

        If the in-flight job has not started (PENDING or RETRY_SCHEDULED)
        and its snapshot fingerprint differs from *job*'s, it is marked
        SUPERSEDED and *job* is inserted in its place.  Otherwise the
        existing job is returned with ``created=False``.
        """

    @abstractmethod
    async def claim_next(self, *, now: datetime) -> Job | None:
        """Atomically move the oldest due PENDING job to ACTIVE and return it."""

    @abstractmethod
    async def promote_due(self, *, now: datetime) -> int:
        """Move RETRY_SCHEDULED jobs whose backoff has elapsed back to PENDING."""

    @abstractmethod
    async def find_expired_active(self, *, started_before: datetime) -> list[Job]:
        """ACTIVE jobs whose current attempt started before *started_before*.

        Oldest first.  Read-only: the queue fails each one through the
        normal compare-and-set path, so a worker that finishes at the same
        moment still wins or loses cleanly.
        """

    @abstractmethod
    async def transition(
        self,
        job_id: str,
        from_states: Collection[JobState],
        to_state: JobState,
        *,
        now: datetime,
        **changes: Any,
    ) -> Job | None:
        """Compare-and-set the job's state, applying *changes* on success.

        Returns the updated job, or None if the job was not in *from_states*.

        Raises:
            JobNotFoundError: unknown job id
            InvalidTransitionError: job is terminal or the move is not allowed
        """

    @abstractmethod
    async def get(self, job_id: str) -> Job | None:
        ...

    @abstractmethod
    async def find_in_flight(self, client_id: str, packet_type: str) -> Job | None:
        ...

    @abstractmethod
    async def list_jobs(
        self, *, state: JobState | None = None, limit: int = 100
    ) -> list[Job]:
        """Most recently updated jobs first."""

    @abstractmethod
    async def stats(self) -> JobStats:
        ...

    @abstractmethod
    async def outcomes_since(self, since: datetime) -> JobOutcomes:
        """Count jobs that reached COMPLETED or FAILED_ESCALATED at or after *since*."""

    @abstractmethod
    async def archive_terminal(self, *, older_than: datetime) -> int:
        """Delete terminal jobs finished before *older_than*; return the count."""


class InMemoryJobStore(JobStore):
    """Process-local job store for tests, demos, and single-node deployments."""

    def __init__(self) -> None:
        self._jobs: dict[str, Job] = {}
        self._lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def add_unless_in_flight(
        self, job: Job, *, now: datetime, supersede_stale: bool = True
    ) -> AddResult:
        async with self._lock:
            existing = self._find_in_flight(job.client_id, job.packet_type)
            superseded_id = None
            if existing is not None:
                stale = (
                    supersede_stale
                    and existing.state in SUPERSEDABLE_STATES
                    and existing.fingerprint != job.fingerprint
                )
                if not stale:
                    return AddResult(job=existing.model_copy(deep=True), created=False)
                existing.state = JobState.SUPERSEDED
                existing.superseded_by = job.id
                existing.finished_at = now
                existing.updated_at = now
                superseded_id = existing.id

            self._jobs[job.id] = job.model_copy(deep=True)
            return AddResult(
                job=job.model_copy(deep=True), created=True, superseded_id=superseded_id,
            )

    async def claim_next(self, *, now: datetime) -> Job | None:
        async with self._lock:
            due = [
                j for j in self._jobs.values()
                if j.state == JobState.PENDING
                and (j.next_run_at is None or j.next_run_at <= now)
            ]
            if not due:
                return None
            job = min(due, key=lambda j: (j.created_at, j.id))
            job.state = JobState.ACTIVE
            job.started_at = now
            job.updated_at = now
            return job.model_copy(deep=True)

    async def promote_due(self, *, now: datetime) -> int:
        async with self._lock:
            count = 0
            for job in self._jobs.values():
                if (
                    job.state == JobState.RETRY_SCHEDULED
                    and job.next_run_at is not None
                    and job.next_run_at <= now
                ):
                    job.state = JobState.PENDING
                    job.updated_at = now
                    count += 1
            return count

    async def find_expired_active(self, *, started_before: datetime) -> list[Job]:
        async with self._lock:
            expired = [
                j for j in self._jobs.values()
                if j.state == JobState.ACTIVE
                and j.started_at is not None
                and j.started_at < started_before
            ]
            expired.sort(key=lambda j: (j.started_at, j.id))
            return [j.model_copy(deep=True) for j in expired]

    async def transition(
        self,
        job_id: str,
        from_states: Collection[JobState],
        to_state: JobState,
        *,
        now: datetime,
        **changes: Any,
    ) -> Job | None:
        async with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                raise JobNotFoundError(job_id)
            if not check_transition(job, from_states, to_state):
                return None
            for name, value in changes.items():
                setattr(job, name, value)
            job.state = to_state
            job.updated_at = now
            return job.model_copy(deep=True)

    async def archive_terminal(self, *, older_than: datetime) -> int:
        async with self._lock:
            doomed = [
                j.id for j in self._jobs.values()
                if j.is_terminal
                and j.finished_at is not None
                and j.finished_at < older_than
            ]
            for job_id in doomed:
                del self._jobs[job_id]
            return len(doomed)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get(self, job_id: str) -> Job | None:
        job = self._jobs.get(job_id)
        return job.model_copy(deep=True) if job is not None else None

    async def find_in_flight(self, client_id: str, packet_type: str) -> Job | None:
        job = self._find_in_flight(client_id, packet_type)
        return job.model_copy(deep=True) if job is not None else None

    async def list_jobs(
        self, *, state: JobState | None = None, limit: int = 100
    ) -> list[Job]:
        jobs = [j for j in self._jobs.values() if state is None or j.state == state]
        jobs.sort(key=lambda j: (j.updated_at, j.id), reverse=True)
        return [j.model_copy(deep=True) for j in jobs[:limit]]

    async def stats(self) -> JobStats:
        stats = JobStats()
        for job in self._jobs.values():
            if job.state == JobState.PENDING:
                stats.pending += 1
                if stats.oldest_pending_at is None or job.updated_at < stats.oldest_pending_at:
                    stats.oldest_pending_at = job.updated_at
            elif job.state == JobState.ACTIVE:
                stats.active += 1
                if job.started_at is not None and (
                    stats.oldest_active_at is None or job.started_at < stats.oldest_active_at
                ):
                    stats.oldest_active_at = job.started_at
            elif job.state == JobState.RETRY_SCHEDULED:
                stats.retry_scheduled += 1
            elif job.state == JobState.COMPLETED:
                stats.completed += 1
            elif job.state == JobState.FAILED_ESCALATED:
                stats.failed += 1
            elif job.state == JobState.SUPERSEDED:
                stats.superseded += 1
        return stats

    async def outcomes_since(self, since: datetime) -> JobOutcomes:
        outcomes = JobOutcomes()
        for job in self._jobs.values():
            if job.finished_at is None or job.finished_at < since:
                continue
            if job.state == JobState.COMPLETED:
                outcomes.completed += 1
            elif job.state == JobState.FAILED_ESCALATED:
                outcomes.failed += 1
        return outcomes

    def _find_in_flight(self, client_id: str, packet_type: str) -> Job | None:
        for job in self._jobs.values():
            if (
                job.client_id == client_id
                and job.packet_type == packet_type
                and job.state in IN_FLIGHT_STATES
            ):
                return job
        return None
