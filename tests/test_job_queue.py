"""JobQueue tests — dedup, supersede, atomic claim, backoff, escalation.

All timing runs on the ``FakeClock`` from conftest, so retries become due
only when a test advances the clock.
"""

import asyncio
from datetime import timedelta

import pytest

from packet_pipeline.errors import InvalidTransitionError, JobNotFoundError
from packet_pipeline.models.job import JobState
from packet_pipeline.queue import JobQueue, RetryPolicy, escalation_payload

from conftest import RecordingNotifier, make_snapshot


async def _claim_and_fail(queue, clock, error="boom"):
    """Advance past any backoff, claim the next job and fail it."""
    clock.advance(1000)
    job = await queue.claim()
    assert job is not None, "a job should be due after advancing the clock"
    return await queue.fail(job.id, error)


# =====================================================================
# Enqueue and dedup
# =====================================================================


class TestEnqueue:

    @pytest.mark.asyncio
    async def test_enqueue_creates_pending_job(self, queue):
        job_id = await queue.enqueue_generation("client-42", "NUTRITION", make_snapshot())
        job = await queue.get(job_id)
        assert job.state == JobState.PENDING
        assert job.attempts == 0
        assert job.max_attempts == 3
        assert job.client_id == "client-42"

    @pytest.mark.asyncio
    async def test_duplicate_returns_existing_id(self, queue, store):
        snap = make_snapshot()
        first = await queue.enqueue_generation("client-42", "NUTRITION", snap)
        second = await queue.enqueue_generation("client-42", "NUTRITION", snap)
        assert first == second
        assert len(await store.list_jobs()) == 1

    @pytest.mark.asyncio
    async def test_concurrent_enqueue_creates_one_job(self, queue, store):
        snap = make_snapshot()
        ids = await asyncio.gather(*[
            queue.enqueue_generation("client-42", "NUTRITION", snap) for _ in range(10)
        ])
        assert len(set(ids)) == 1
        assert len(await store.list_jobs()) == 1

    @pytest.mark.asyncio
    async def test_different_packet_types_are_independent(self, queue):
        snap = make_snapshot()
        a = await queue.enqueue_generation("client-42", "NUTRITION", snap)
        b = await queue.enqueue_generation("client-42", "WORKOUT", snap)
        c = await queue.enqueue_generation("client-7", "NUTRITION", snap)
        assert len({a, b, c}) == 3

    @pytest.mark.asyncio
    async def test_changed_answers_supersede_pending_job(self, queue):
        old = await queue.enqueue_generation("client-42", "NUTRITION", make_snapshot({"full-name": "A"}))
        new = await queue.enqueue_generation("client-42", "NUTRITION", make_snapshot({"full-name": "B"}))
        assert old != new
        old_job = await queue.get(old)
        assert old_job.state == JobState.SUPERSEDED
        assert old_job.superseded_by == new
        assert (await queue.get(new)).snapshot.answers == {"full-name": "B"}

    @pytest.mark.asyncio
    async def test_changed_answers_do_not_supersede_active_job(self, queue):
        first = await queue.enqueue_generation("client-42", "NUTRITION", make_snapshot({"full-name": "A"}))
        await queue.claim()
        again = await queue.enqueue_generation("client-42", "NUTRITION", make_snapshot({"full-name": "B"}))
        assert again == first
        assert (await queue.get(first)).state == JobState.ACTIVE

    @pytest.mark.asyncio
    async def test_fingerprint_ignores_submission_time(self, queue, clock):
        snap_a = make_snapshot(at=clock())
        snap_b = make_snapshot(at=clock.advance(60))
        assert snap_a.fingerprint() == snap_b.fingerprint()
        first = await queue.enqueue_generation("client-42", "NUTRITION", snap_a)
        assert await queue.enqueue_generation("client-42", "NUTRITION", snap_b) == first

    @pytest.mark.asyncio
    async def test_new_job_allowed_after_completion(self, queue):
        first = await queue.enqueue_generation("client-42", "NUTRITION", make_snapshot())
        job = await queue.claim()
        await queue.complete(job.id, "ref")
        second = await queue.enqueue_generation("client-42", "NUTRITION", make_snapshot())
        assert second != first


# =====================================================================
# Claiming
# =====================================================================


class TestClaim:

    @pytest.mark.asyncio
    async def test_claim_marks_active(self, queue, clock):
        job_id = await queue.enqueue_generation("c1", "NUTRITION", make_snapshot())
        job = await queue.claim()
        assert job.id == job_id
        assert job.state == JobState.ACTIVE
        assert job.started_at == clock()

    @pytest.mark.asyncio
    async def test_concurrent_claims_never_share_a_job(self, queue):
        await queue.enqueue_generation("c1", "NUTRITION", make_snapshot())
        results = await asyncio.gather(*[queue.claim() for _ in range(5)])
        claimed = [j for j in results if j is not None]
        assert len(claimed) == 1

    @pytest.mark.asyncio
    async def test_oldest_first(self, queue, clock):
        first = await queue.enqueue_generation("c1", "NUTRITION", make_snapshot())
        clock.advance(1)
        await queue.enqueue_generation("c2", "NUTRITION", make_snapshot())
        assert (await queue.claim()).id == first

    @pytest.mark.asyncio
    async def test_empty_queue(self, queue):
        assert await queue.claim() is None


# =====================================================================
# Retry and escalation
# =====================================================================


class TestRetry:

    @pytest.mark.asyncio
    async def test_failure_schedules_retry_with_backoff(self, queue, clock):
        job_id = await queue.enqueue_generation("c1", "NUTRITION", make_snapshot())
        await queue.claim()
        job = await queue.fail(job_id, "render failed")

        assert job.state == JobState.RETRY_SCHEDULED
        assert job.attempts == 1
        assert job.last_error == "render failed"
        assert job.next_run_at == clock() + timedelta(seconds=5)

        # Not due yet
        clock.advance(4)
        assert await queue.claim() is None
        clock.advance(1)
        retried = await queue.claim()
        assert retried.id == job_id

        job = await queue.fail(job_id, RuntimeError("again"))
        assert job.attempts == 2
        assert job.last_error == "RuntimeError: again"
        assert job.next_run_at == clock() + timedelta(seconds=10)

    @pytest.mark.asyncio
    async def test_escalates_exactly_once_at_max_attempts(self, store, clock):
        notifier = RecordingNotifier()
        queue = JobQueue(
            store, retry_policy=RetryPolicy(max_attempts=5), notifier=notifier, clock=clock,
        )
        snap = make_snapshot({"full-name": "Jane Doe", "email": "jane@example.com"})
        job_id = await queue.enqueue_generation("client-42", "NUTRITION", snap)

        states = []
        for _ in range(5):
            job = await _claim_and_fail(queue, clock, "template exploded")
            states.append(job.state)

        assert states[:4] == [JobState.RETRY_SCHEDULED] * 4
        assert states[4] == JobState.FAILED_ESCALATED
        assert len(notifier.escalations) == 1

        payload = notifier.escalations[0]
        assert payload.job_id == job_id
        assert payload.retry_count == 5
        assert payload.client_name == "Jane Doe"
        assert payload.client_email == "jane@example.com"
        assert payload.error_message == "template exploded"
        dumped = payload.model_dump(by_alias=True)
        assert dumped["retryCount"] == 5
        assert dumped["jobId"] == job_id

        # Nothing left to claim and no further escalation
        clock.advance(10_000)
        assert await queue.claim() is None
        assert len(notifier.escalations) == 1

    @pytest.mark.asyncio
    async def test_escalation_failure_is_logged_not_raised(self, store, clock):
        class BrokenNotifier(RecordingNotifier):
            async def escalate(self, payload):
                raise ConnectionError("mail server down")

        queue = JobQueue(
            store, retry_policy=RetryPolicy(max_attempts=1), notifier=BrokenNotifier(), clock=clock,
        )
        await queue.enqueue_generation("c1", "NUTRITION", make_snapshot())
        job = await queue.claim()
        failed = await queue.fail(job.id, "x")
        assert failed.state == JobState.FAILED_ESCALATED

    @pytest.mark.asyncio
    async def test_retry_scheduled_job_can_be_superseded(self, queue):
        old = await queue.enqueue_generation("c1", "NUTRITION", make_snapshot({"full-name": "A"}))
        await queue.claim()
        await queue.fail(old, "x")
        new = await queue.enqueue_generation("c1", "NUTRITION", make_snapshot({"full-name": "B"}))
        assert new != old
        assert (await queue.get(old)).state == JobState.SUPERSEDED

    def test_backoff_schedule(self):
        policy = RetryPolicy(max_attempts=10, base_delay=5, factor=2, max_delay=30)
        assert [policy.delay(n).total_seconds() for n in range(1, 6)] == [5, 10, 20, 30, 30]

    @pytest.mark.parametrize(
        "kwargs",
        [{"max_attempts": 0}, {"base_delay": -1}, {"factor": 0.5}],
    )
    def test_invalid_policy(self, kwargs):
        with pytest.raises(ValueError):
            RetryPolicy(**kwargs)


# =====================================================================
# Abandoned attempts
# =====================================================================


class TestReclaim:

    LEASE = 600

    @pytest.fixture
    def leased_queue(self, store, notifier, clock):
        policy = RetryPolicy(max_attempts=3, base_delay=5, factor=2, max_delay=300)
        return JobQueue(
            store, retry_policy=policy, notifier=notifier, clock=clock, active_lease=self.LEASE,
        )

    @pytest.mark.asyncio
    async def test_abandoned_job_is_failed_on_next_claim(self, leased_queue, clock):
        queue = leased_queue
        dead_id = await queue.enqueue_generation("client-42", "NUTRITION", make_snapshot({"full-name": "A"}))
        assert (await queue.claim()).id == dead_id
        # The worker never comes back
        await queue.enqueue_generation("client-7", "NUTRITION", make_snapshot())
        clock.advance(24 * 3600)

        claimed = await queue.claim()
        assert claimed.client_id == "client-7"

        dead = await queue.get(dead_id)
        assert dead.state == JobState.RETRY_SCHEDULED
        assert dead.attempts == 1
        assert "JobTimeoutError" in dead.last_error

        # Changed answers now replace it instead of returning the dead id
        new_id = await queue.enqueue_generation("client-42", "NUTRITION", make_snapshot({"full-name": "B"}))
        assert new_id != dead_id
        assert (await queue.get(dead_id)).state == JobState.SUPERSEDED

    @pytest.mark.asyncio
    async def test_job_within_lease_is_left_alone(self, leased_queue, clock):
        job_id = await leased_queue.enqueue_generation("c1", "NUTRITION", make_snapshot())
        await leased_queue.claim()
        clock.advance(self.LEASE - 1)
        assert await leased_queue.reclaim_expired() == 0
        assert (await leased_queue.get(job_id)).state == JobState.ACTIVE

    @pytest.mark.asyncio
    async def test_reclaimed_retry_runs_again(self, leased_queue, clock):
        job_id = await leased_queue.enqueue_generation("c1", "NUTRITION", make_snapshot())
        await leased_queue.claim()
        clock.advance(self.LEASE + 1)
        assert await leased_queue.reclaim_expired() == 1

        clock.advance(5)
        retried = await leased_queue.claim()
        assert retried.id == job_id
        assert retried.state == JobState.ACTIVE
        done = await leased_queue.complete(job_id, "ref")
        assert done.attempts == 1

    @pytest.mark.asyncio
    async def test_last_attempt_escalates_once(self, store, clock):
        notifier = RecordingNotifier()
        queue = JobQueue(
            store,
            retry_policy=RetryPolicy(max_attempts=1),
            notifier=notifier,
            clock=clock,
            active_lease=self.LEASE,
        )
        job_id = await queue.enqueue_generation("c1", "NUTRITION", make_snapshot())
        await queue.claim()
        clock.advance(self.LEASE + 1)

        assert await queue.reclaim_expired() == 1
        assert await queue.reclaim_expired() == 0
        assert (await queue.get(job_id)).state == JobState.FAILED_ESCALATED
        assert len(notifier.escalations) == 1
        assert "timed out" in notifier.escalations[0].error_message

    @pytest.mark.asyncio
    async def test_late_completion_after_reclaim_is_ignored(self, leased_queue, clock):
        await leased_queue.enqueue_generation("c1", "NUTRITION", make_snapshot())
        job = await leased_queue.claim()
        clock.advance(self.LEASE + 1)
        await leased_queue.reclaim_expired()

        assert await leased_queue.complete(job.id, "late") is None
        assert (await leased_queue.get(job.id)).state == JobState.RETRY_SCHEDULED

    def test_lease_must_be_positive(self, store):
        with pytest.raises(ValueError):
            JobQueue(store, active_lease=0)


# =====================================================================
# Terminal states
# =====================================================================


class TestTerminal:

    @pytest.mark.asyncio
    async def test_complete(self, queue, clock):
        await queue.enqueue_generation("c1", "NUTRITION", make_snapshot())
        job = await queue.claim()
        done = await queue.complete(job.id, "packet:1")
        assert done.state == JobState.COMPLETED
        assert done.output_ref == "packet:1"
        assert done.finished_at == clock()

    @pytest.mark.asyncio
    async def test_completed_job_is_immutable(self, queue):
        await queue.enqueue_generation("c1", "NUTRITION", make_snapshot())
        job = await queue.claim()
        await queue.complete(job.id, "packet:1")

        with pytest.raises(InvalidTransitionError):
            await queue.fail(job.id, "late failure")
        with pytest.raises(InvalidTransitionError):
            await queue.complete(job.id, "packet:2")
        assert (await queue.get(job.id)).output_ref == "packet:1"

    @pytest.mark.asyncio
    async def test_complete_requires_active(self, queue):
        job_id = await queue.enqueue_generation("c1", "NUTRITION", make_snapshot())
        assert await queue.complete(job_id, "ref") is None
        assert (await queue.get(job_id)).state == JobState.PENDING

    @pytest.mark.asyncio
    async def test_unknown_job(self, queue):
        with pytest.raises(JobNotFoundError):
            await queue.get("nope")


# =====================================================================
# Requeue, reads, archive
# =====================================================================


class TestRequeue:

    @pytest.mark.asyncio
    async def test_requeue_finished_job(self, queue):
        await queue.enqueue_generation("c1", "NUTRITION", make_snapshot())
        job = await queue.claim()
        await queue.complete(job.id, "ref")

        new_id = await queue.requeue(job.id)
        assert new_id != job.id
        new_job = await queue.get(new_id)
        assert new_job.state == JobState.PENDING
        assert new_job.snapshot == job.snapshot
        assert (await queue.get(job.id)).state == JobState.COMPLETED

    @pytest.mark.asyncio
    async def test_requeue_in_flight_job_rejected(self, queue):
        job_id = await queue.enqueue_generation("c1", "NUTRITION", make_snapshot())
        with pytest.raises(InvalidTransitionError) as exc_info:
            await queue.requeue(job_id)
        assert "only valid during" in str(exc_info.value)


class TestReads:

    @pytest.mark.asyncio
    async def test_stats(self, queue):
        await queue.enqueue_generation("c1", "NUTRITION", make_snapshot())
        await queue.enqueue_generation("c2", "NUTRITION", make_snapshot())
        await queue.enqueue_generation("c3", "NUTRITION", make_snapshot())
        job = await queue.claim()
        await queue.complete(job.id, "ref")
        await queue.claim()

        stats = await queue.stats()
        assert stats.pending == 1
        assert stats.active == 1
        assert stats.completed == 1
        assert stats.in_flight == 2

    @pytest.mark.asyncio
    async def test_list_jobs_by_state(self, queue, clock):
        await queue.enqueue_generation("c1", "NUTRITION", make_snapshot())
        clock.advance(1)
        await queue.enqueue_generation("c2", "NUTRITION", make_snapshot())
        await queue.claim()
        active = await queue.list_jobs(state=JobState.ACTIVE)
        assert [j.client_id for j in active] == ["c1"]
        assert len(await queue.list_jobs(limit=1)) == 1

    @pytest.mark.asyncio
    async def test_archive_terminal(self, queue, store, clock):
        await queue.enqueue_generation("c1", "NUTRITION", make_snapshot())
        clock.advance(1)
        await queue.enqueue_generation("c2", "NUTRITION", make_snapshot())
        job = await queue.claim()
        await queue.complete(job.id, "ref")

        clock.advance(3600)
        assert await store.archive_terminal(older_than=clock() - timedelta(hours=2)) == 0
        assert await store.archive_terminal(older_than=clock()) == 1
        remaining = await store.list_jobs()
        assert [j.client_id for j in remaining] == ["c2"]

    @pytest.mark.asyncio
    async def test_store_hands_out_copies(self, queue, store):
        job_id = await queue.enqueue_generation("c1", "NUTRITION", make_snapshot())
        job = await store.get(job_id)
        job.state = JobState.COMPLETED
        assert (await store.get(job_id)).state == JobState.PENDING


def test_escalation_payload_defaults():
    from packet_pipeline.models.job import Job

    job = Job(
        client_id="c1",
        packet_type="WORKOUT",
        max_attempts=3,
        attempts=3,
        snapshot=make_snapshot({}),
        created_at=make_snapshot().submitted_at,
        updated_at=make_snapshot().submitted_at,
    )
    payload = escalation_payload(job)
    assert payload.client_name == "Unknown client"
    assert payload.client_email == ""
    assert payload.error_message == "unknown error"
