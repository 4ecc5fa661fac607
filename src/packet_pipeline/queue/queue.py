"""JobQueue — enqueue, claim, complete, and fail generation jobs.

The queue owns the retry policy and escalation; the store owns atomicity.
All state changes go through ``JobStore.transition`` (compare-and-set), so
exactly one caller wins any given transition.  Escalation fires only for
the caller that wins ``active -> failed_escalated``, which makes it
exactly-once per job.

An ACTIVE job whose worker disappeared is failed by the next ``claim``
once ``active_lease`` has passed, then retried or escalated like any other
failed attempt.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Callable

from packet_pipeline import constants
from packet_pipeline.errors import InvalidTransitionError, JobNotFoundError, JobTimeoutError
from packet_pipeline.interfaces import Notifier
from packet_pipeline.models.job import (
    AnswerSnapshot,
    EscalationPayload,
    Job,
    JobState,
    JobStats,
)
from packet_pipeline.queue.retry import RetryPolicy
from packet_pipeline.queue.store import JobStore

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class JobQueue:
    """Coordinates job lifecycle on top of a ``JobStore``.

    Args:
        store: job persistence (in-memory or SQL)
        retry_policy: backoff and escalation threshold
        notifier: receives escalations; optional for tests and tooling
        clock: returns the current time (UTC); injectable for tests
        active_lease: seconds an ACTIVE attempt may run before the queue
            assumes its worker is gone and fails it
    """

    def __init__(
        self,
        store: JobStore,
        *,
        retry_policy: RetryPolicy | None = None,
        notifier: Notifier | None = None,
        clock: Clock | None = None,
        active_lease: float = constants.ACTIVE_LEASE_SECONDS,
    ) -> None:
        if active_lease <= 0:
            raise ValueError("active_lease must be > 0")
        self.store = store
        self.retry_policy = retry_policy or RetryPolicy()
        self.notifier = notifier
        self.clock = clock or utcnow
        self.active_lease = active_lease

    # ------------------------------------------------------------------
    # Enqueue
    # ------------------------------------------------------------------

    async def enqueue_generation(
        self,
        client_id: str,
        packet_type: str,
        answer_snapshot: AnswerSnapshot,
    ) -> str:
        """Queue packet generation for a client; return the job id.

        If a job for (client_id, packet_type) is already in flight, its id is
        returned and nothing new is queued, unless that job has not started
        yet and was queued from different answers, in which case it is
        superseded by a fresh job.
        """
        now = self.clock()
        job = Job(
            client_id=client_id,
            packet_type=packet_type,
            max_attempts=self.retry_policy.max_attempts,
            snapshot=answer_snapshot,
            created_at=now,
            updated_at=now,
        )
        result = await self.store.add_unless_in_flight(job, now=now)
        if result.created:
            if result.superseded_id:
                logger.info(
                    "Job %s superseded by %s (%s/%s): answers changed",
                    result.superseded_id, result.job.id, client_id, packet_type,
                )
            else:
                logger.info("Job %s queued (%s/%s)", result.job.id, client_id, packet_type)
        else:
            logger.info(
                "Job %s already in flight for %s/%s; not queueing a duplicate",
                result.job.id, client_id, packet_type,
            )
        return result.job.id

    async def requeue(self, job_id: str) -> str:
        """Manually regenerate from a finished job's snapshot.

        The finished job is left untouched; a new job is queued (or the
        in-flight one for the same key is returned).

        Raises:
            JobNotFoundError: unknown job id
            InvalidTransitionError: the job is still in flight
        """
        job = await self.get(job_id)
        if not job.is_terminal:
            raise InvalidTransitionError(job.id, job.state.value, JobState.PENDING.value)

        now = self.clock()
        fresh = Job(
            client_id=job.client_id,
            packet_type=job.packet_type,
            max_attempts=self.retry_policy.max_attempts,
            snapshot=job.snapshot,
            created_at=now,
            updated_at=now,
        )
        result = await self.store.add_unless_in_flight(fresh, now=now, supersede_stale=False)
        logger.info("Job %s requeued as %s (created=%s)", job_id, result.job.id, result.created)
        return result.job.id

    # ------------------------------------------------------------------
    # Worker-facing lifecycle
    # ------------------------------------------------------------------

    async def claim(self) -> Job | None:
        """Reclaim abandoned attempts, promote due retries, then atomically
        claim the oldest pending job.
        """
        await self.reclaim_expired()
        now = self.clock()
        promoted = await self.store.promote_due(now=now)
        if promoted:
            logger.debug("Promoted %d retry-scheduled job(s) to pending", promoted)
        return await self.store.claim_next(now=now)

    async def reclaim_expired(self) -> int:
        """Fail ACTIVE jobs held longer than ``active_lease``.

        Covers a worker that died between claim and completion.  Each job
        is failed with ``JobTimeoutError`` and then retried or escalated
        like any other failed attempt.  Returns how many this call failed.
        """
        started_before = self.clock() - timedelta(seconds=self.active_lease)
        expired = await self.store.find_expired_active(started_before=started_before)
        count = 0
        for job in expired:
            logger.warning(
                "Job %s (%s/%s) active since %s without finishing; reclaiming",
                job.id, job.client_id, job.packet_type, job.started_at.isoformat(),
            )
            try:
                failed = await self.fail(job.id, JobTimeoutError(job.id, self.active_lease))
            except InvalidTransitionError:
                # Its worker finished it after all
                logger.debug("Job %s reached a terminal state before reclaim", job.id)
                continue
            if failed is not None:
                count += 1
        return count

    async def complete(self, job_id: str, output_ref: str) -> Job | None:
        """Mark an ACTIVE job COMPLETED."""
        now = self.clock()
        job = await self.store.transition(
            job_id,
            {JobState.ACTIVE},
            JobState.COMPLETED,
            now=now,
            output_ref=output_ref,
            finished_at=now,
            next_run_at=None,
        )
        if job is None:
            logger.warning("Job %s was no longer active at completion", job_id)
        else:
            logger.info("Job %s completed (%s/%s)", job.id, job.client_id, job.packet_type)
        return job

    async def fail(self, job_id: str, error: str | BaseException) -> Job | None:
        """Record a failed attempt on an ACTIVE job.

        Below ``max_attempts`` the job is scheduled for retry after backoff;
        on reaching it the job is escalated exactly once.

        Returns:
            The updated job, or None if the job was no longer ACTIVE.
        """
        message = error if isinstance(error, str) else f"{type(error).__name__}: {error}"
        current = await self.get(job_id)
        attempts = current.attempts + 1
        now = self.clock()

        if attempts >= current.max_attempts:
            job = await self.store.transition(
                job_id,
                {JobState.ACTIVE},
                JobState.FAILED_ESCALATED,
                now=now,
                attempts=attempts,
                last_error=message,
                finished_at=now,
                next_run_at=None,
            )
            if job is None:
                logger.warning("Job %s was no longer active when failing", job_id)
                return None
            logger.error(
                "Job %s failed permanently after %d attempt(s) (%s/%s): %s",
                job.id, attempts, job.client_id, job.packet_type, message,
            )
            await self._escalate(job)
            return job

        delay = self.retry_policy.delay(attempts)
        job = await self.store.transition(
            job_id,
            {JobState.ACTIVE},
            JobState.RETRY_SCHEDULED,
            now=now,
            attempts=attempts,
            last_error=message,
            next_run_at=now + delay,
        )
        if job is None:
            logger.warning("Job %s was no longer active when failing", job_id)
            return None
        logger.warning(
            "Job %s attempt %d/%d failed, retrying in %.0fs: %s",
            job.id, attempts, job.max_attempts, delay.total_seconds(), message,
        )
        return job

    async def _escalate(self, job: Job) -> None:
        if self.notifier is None:
            logger.error("Job %s needs escalation but no notifier is configured", job.id)
            return
        payload = escalation_payload(job)
        try:
            await self.notifier.escalate(payload)
        except Exception:
            logger.exception("Escalation delivery failed for job %s", job.id)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get(self, job_id: str) -> Job:
        job = await self.store.get(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        return job

    async def stats(self) -> JobStats:
        return await self.store.stats()

    async def list_jobs(self, *, state: JobState | None = None, limit: int = 100) -> list[Job]:
        return await self.store.list_jobs(state=state, limit=limit)


def escalation_payload(job: Job) -> EscalationPayload:
    """Build the human-facing escalation record for a failed job."""
    answers = {**job.snapshot.hidden_answers, **job.snapshot.answers}
    return EscalationPayload(
        job_id=job.id,
        client_id=job.client_id,
        client_name=str(answers.get("full-name") or "Unknown client"),
        client_email=str(answers.get("email") or ""),
        packet_type=job.packet_type,
        error_message=job.last_error or "unknown error",
        retry_count=job.attempts,
    )
