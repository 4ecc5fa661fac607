"""PostgreSQL implementations of ``JobStore`` and ``PacketSink``.

Atomicity comes from the database rather than a process lock, so any number
of server processes can share one queue:

  - enqueue dedup relies on the ``uq_in_flight_job`` partial unique index;
    losing an insert race surfaces as ``IntegrityError`` and the winner's
    job is returned instead
  - ``claim_next`` uses ``SELECT ... FOR UPDATE SKIP LOCKED`` so two workers
    never claim the same row
  - ``transition`` locks the row and re-checks its state before writing
  - ``find_expired_active`` only reads; reclaiming goes through
    ``transition`` like any other failure

Each method runs in its own short transaction.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Collection

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from packet_db.engine import get_session_factory
from packet_db.models.job import GenerationJob
from packet_db.models.packet import RenderedPacketRow
from packet_pipeline.errors import JobNotFoundError
from packet_pipeline.interfaces import PacketSink
from packet_pipeline.models.job import (
    IN_FLIGHT_STATES,
    TERMINAL_STATES,
    AnswerSnapshot,
    Job,
    JobOutcomes,
    JobState,
    JobStats,
)
from packet_pipeline.models.template import RenderedPacket
from packet_pipeline.queue.store import (
    SUPERSEDABLE_STATES,
    AddResult,
    JobStore,
    check_transition,
)

logger = logging.getLogger(__name__)


def _values(states: Collection[JobState]) -> list[str]:
    return sorted(s.value for s in states)


def row_to_job(row: GenerationJob) -> Job:
    return Job(
        id=row.id,
        client_id=row.client_id,
        packet_type=row.packet_type,
        state=JobState(row.state),
        attempts=row.attempts,
        max_attempts=row.max_attempts,
        last_error=row.last_error,
        snapshot=AnswerSnapshot.model_validate(row.snapshot),
        fingerprint=row.fingerprint,
        created_at=row.created_at,
        updated_at=row.updated_at,
        next_run_at=row.next_run_at,
        started_at=row.started_at,
        finished_at=row.finished_at,
        output_ref=row.output_ref,
        superseded_by=row.superseded_by,
    )


def job_to_row(job: Job) -> GenerationJob:
    return GenerationJob(
        id=job.id,
        client_id=job.client_id,
        packet_type=job.packet_type,
        state=job.state.value,
        attempts=job.attempts,
        max_attempts=job.max_attempts,
        last_error=job.last_error,
        snapshot=job.snapshot.model_dump(mode="json"),
        fingerprint=job.fingerprint,
        created_at=job.created_at,
        updated_at=job.updated_at,
        next_run_at=job.next_run_at,
        started_at=job.started_at,
        finished_at=job.finished_at,
        output_ref=job.output_ref,
        superseded_by=job.superseded_by,
    )


class SqlJobStore(JobStore):
    """``JobStore`` backed by the ``generation_jobs`` table.

    Args:
        session_factory: async session factory; defaults to the shared
            engine from :mod:`packet_db.engine`
    """

    def __init__(
        self, session_factory: async_sessionmaker[AsyncSession] | None = None
    ) -> None:
        self._session_factory = session_factory or get_session_factory()

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def add_unless_in_flight(
        self, job: Job, *, now: datetime, supersede_stale: bool = True
    ) -> AddResult:
        try:
            return await self._add(job, now=now, supersede_stale=supersede_stale)
        except IntegrityError:
            # A concurrent enqueue inserted the in-flight job first
            existing = await self.find_in_flight(job.client_id, job.packet_type)
            if existing is None:
                raise
            logger.debug("Lost enqueue race for %s/%s", job.client_id, job.packet_type)
            return AddResult(job=existing, created=False)

    async def _add(self, job: Job, *, now: datetime, supersede_stale: bool) -> AddResult:
        async with self._session_factory() as db, db.begin():
            stmt = (
                select(GenerationJob)
                .where(
                    GenerationJob.client_id == job.client_id,
                    GenerationJob.packet_type == job.packet_type,
                    GenerationJob.state.in_(_values(IN_FLIGHT_STATES)),
                )
                .with_for_update()
            )
            existing = (await db.execute(stmt)).scalar_one_or_none()
            superseded_id = None
            if existing is not None:
                stale = (
                    supersede_stale
                    and JobState(existing.state) in SUPERSEDABLE_STATES
                    and existing.fingerprint != job.fingerprint
                )
                if not stale:
                    return AddResult(job=row_to_job(existing), created=False)
                existing.state = JobState.SUPERSEDED.value
                existing.superseded_by = job.id
                existing.finished_at = now
                existing.updated_at = now
                superseded_id = existing.id
                # Free the unique index slot before inserting the replacement
                await db.flush()

            db.add(job_to_row(job))
            await db.flush()
            return AddResult(job=job, created=True, superseded_id=superseded_id)

    async def claim_next(self, *, now: datetime) -> Job | None:
        async with self._session_factory() as db, db.begin():
            stmt = (
                select(GenerationJob)
                .where(
                    GenerationJob.state == JobState.PENDING.value,
                    or_(GenerationJob.next_run_at.is_(None), GenerationJob.next_run_at <= now),
                )
                .order_by(GenerationJob.created_at, GenerationJob.id)
                .limit(1)
                .with_for_update(skip_locked=True)
            )
            row = (await db.execute(stmt)).scalar_one_or_none()
            if row is None:
                return None
            row.state = JobState.ACTIVE.value
            row.started_at = now
            row.updated_at = now
            await db.flush()
            return row_to_job(row)

    async def promote_due(self, *, now: datetime) -> int:
        async with self._session_factory() as db, db.begin():
            stmt = (
                update(GenerationJob)
                .where(
                    GenerationJob.state == JobState.RETRY_SCHEDULED.value,
                    GenerationJob.next_run_at <= now,
                )
                .values(state=JobState.PENDING.value, updated_at=now)
            )
            result = await db.execute(stmt)
            return result.rowcount or 0

    async def find_expired_active(self, *, started_before: datetime) -> list[Job]:
        async with self._session_factory() as db:
            stmt = (
                select(GenerationJob)
                .where(
                    GenerationJob.state == JobState.ACTIVE.value,
                    GenerationJob.started_at < started_before,
                )
                .order_by(GenerationJob.started_at, GenerationJob.id)
            )
            rows = (await db.execute(stmt)).scalars().all()
            return [row_to_job(r) for r in rows]

    async def transition(
        self,
        job_id: str,
        from_states: Collection[JobState],
        to_state: JobState,
        *,
        now: datetime,
        **changes: Any,
    ) -> Job | None:
        async with self._session_factory() as db, db.begin():
            stmt = select(GenerationJob).where(GenerationJob.id == job_id).with_for_update()
            row = (await db.execute(stmt)).scalar_one_or_none()
            if row is None:
                raise JobNotFoundError(job_id)
            if not check_transition(row_to_job(row), from_states, to_state):
                return None
            for name, value in changes.items():
                setattr(row, name, value)
            row.state = to_state.value
            row.updated_at = now
            await db.flush()
            return row_to_job(row)

    async def archive_terminal(self, *, older_than: datetime) -> int:
        async with self._session_factory() as db, db.begin():
            stmt = delete(GenerationJob).where(
                GenerationJob.state.in_(_values(TERMINAL_STATES)),
                GenerationJob.finished_at < older_than,
            )
            result = await db.execute(stmt)
            return result.rowcount or 0

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get(self, job_id: str) -> Job | None:
        async with self._session_factory() as db:
            row = await db.get(GenerationJob, job_id)
            return row_to_job(row) if row is not None else None

    async def find_in_flight(self, client_id: str, packet_type: str) -> Job | None:
        async with self._session_factory() as db:
            stmt = select(GenerationJob).where(
                GenerationJob.client_id == client_id,
                GenerationJob.packet_type == packet_type,
                GenerationJob.state.in_(_values(IN_FLIGHT_STATES)),
            )
            row = (await db.execute(stmt)).scalar_one_or_none()
            return row_to_job(row) if row is not None else None

    async def list_jobs(
        self, *, state: JobState | None = None, limit: int = 100
    ) -> list[Job]:
        async with self._session_factory() as db:
            stmt = select(GenerationJob)
            if state is not None:
                stmt = stmt.where(GenerationJob.state == state.value)
            stmt = stmt.order_by(
                GenerationJob.updated_at.desc(), GenerationJob.id.desc()
            ).limit(limit)
            rows = (await db.execute(stmt)).scalars().all()
            return [row_to_job(r) for r in rows]

    async def stats(self) -> JobStats:
        async with self._session_factory() as db:
            counts = await db.execute(
                select(GenerationJob.state, func.count()).group_by(GenerationJob.state)
            )
            by_state = {state: n for state, n in counts.all()}
            oldest = await db.scalar(
                select(func.min(GenerationJob.updated_at)).where(
                    GenerationJob.state == JobState.PENDING.value
                )
            )
            oldest_active = await db.scalar(
                select(func.min(GenerationJob.started_at)).where(
                    GenerationJob.state == JobState.ACTIVE.value
                )
            )
        return JobStats(
            pending=by_state.get(JobState.PENDING.value, 0),
            active=by_state.get(JobState.ACTIVE.value, 0),
            retry_scheduled=by_state.get(JobState.RETRY_SCHEDULED.value, 0),
            completed=by_state.get(JobState.COMPLETED.value, 0),
            failed=by_state.get(JobState.FAILED_ESCALATED.value, 0),
            superseded=by_state.get(JobState.SUPERSEDED.value, 0),
            oldest_pending_at=oldest,
            oldest_active_at=oldest_active,
        )

    async def outcomes_since(self, since: datetime) -> JobOutcomes:
        async with self._session_factory() as db:
            result = await db.execute(
                select(GenerationJob.state, func.count())
                .where(
                    GenerationJob.finished_at >= since,
                    GenerationJob.state.in_(
                        [JobState.COMPLETED.value, JobState.FAILED_ESCALATED.value]
                    ),
                )
                .group_by(GenerationJob.state)
            )
            by_state = {state: n for state, n in result.all()}
        return JobOutcomes(
            completed=by_state.get(JobState.COMPLETED.value, 0),
            failed=by_state.get(JobState.FAILED_ESCALATED.value, 0),
        )


class SqlPacketSink(PacketSink):
    """Stores rendered packets in the ``rendered_packets`` table.

    Returns ``packet:<uuid>`` as the output reference.
    """

    def __init__(
        self, session_factory: async_sessionmaker[AsyncSession] | None = None
    ) -> None:
        self._session_factory = session_factory or get_session_factory()

    async def save(self, job: Job, packet: RenderedPacket) -> str:
        async with self._session_factory() as db, db.begin():
            row = RenderedPacketRow(
                job_id=job.id,
                client_id=job.client_id,
                packet_type=job.packet_type,
                template_id=packet.template_id,
                checksum=packet.checksum(),
                content=packet.model_dump(mode="json"),
            )
            db.add(row)
            await db.flush()
            return f"packet:{row.id}"
