"""WorkerPool — asyncio workers that drain the job queue.

Each worker loops:
  1. claim the oldest due job (abandoned attempts are reclaimed and
     retries whose backoff elapsed are promoted first)
  2. render it and hand it to the packet sink under ``job_timeout``;
     rendering is short synchronous CPU work and runs on the event loop,
     so the timeout bounds the sink save
  3. complete the job and notify the client, or record the failure so the
     queue can schedule a retry or escalate

``run_once`` performs a single claim-and-process step and is what tests
drive directly; ``start``/``stop`` manage the background loops.
"""

from __future__ import annotations

import asyncio
import logging

from packet_pipeline import constants
from packet_pipeline.errors import JobTimeoutError
from packet_pipeline.generator import PacketGenerator
from packet_pipeline.interfaces import Notifier, PacketSink
from packet_pipeline.models.job import Job
from packet_pipeline.queue.queue import JobQueue

logger = logging.getLogger(__name__)


class WorkerPool:
    """Fixed-size pool of cooperative asyncio workers.

    Args:
        queue: the job queue to drain
        generator: renders a packet for a job
        sink: persists rendered packets
        notifier: told when a packet is ready (optional)
        size: number of concurrent workers
        job_timeout: seconds allowed for render + save of one attempt
        poll_interval: idle sleep between empty claims
    """

    def __init__(
        self,
        queue: JobQueue,
        generator: PacketGenerator,
        sink: PacketSink,
        notifier: Notifier | None = None,
        *,
        size: int = constants.WORKER_COUNT,
        job_timeout: float = constants.JOB_TIMEOUT_SECONDS,
        poll_interval: float = constants.WORKER_POLL_INTERVAL_SECONDS,
    ) -> None:
        if size < 1:
            raise ValueError("size must be >= 1")
        self._queue = queue
        self._generator = generator
        self._sink = sink
        self._notifier = notifier
        self.size = size
        self.job_timeout = job_timeout
        self.poll_interval = poll_interval
        self._tasks: list[asyncio.Task] = []
        self._stopping = asyncio.Event()

    @property
    def running(self) -> bool:
        return any(not t.done() for t in self._tasks)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        if self.running:
            return
        self._stopping.clear()
        self._tasks = [
            asyncio.create_task(self._worker_loop(i), name=f"packet-worker-{i}")
            for i in range(self.size)
        ]
        logger.info("WorkerPool started with %d worker(s)", self.size)

    async def stop(self, grace: float = 10.0) -> None:
        """Stop claiming new jobs; wait up to *grace* seconds for in-flight ones."""
        self._stopping.set()
        if not self._tasks:
            return
        done, pending = await asyncio.wait(self._tasks, timeout=grace)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
            logger.warning("WorkerPool cancelled %d worker(s) after grace period", len(pending))
        self._tasks = []
        logger.info("WorkerPool stopped")

    async def _worker_loop(self, worker_id: int) -> None:
        while not self._stopping.is_set():
            try:
                job = await self.run_once()
            except Exception:
                logger.exception("Worker %d: unexpected error in claim loop", worker_id)
                job = None
            if job is None:
                try:
                    await asyncio.wait_for(self._stopping.wait(), timeout=self.poll_interval)
                except asyncio.TimeoutError:
                    pass

    # ------------------------------------------------------------------
    # Processing
    # ------------------------------------------------------------------

    async def run_once(self) -> Job | None:
        """Claim and process one job.

        Returns:
            The job as it stands after processing, or None if nothing was due.
        """
        job = await self._queue.claim()
        if job is None:
            return None
        return await self.process(job)

    async def run_until_idle(self, max_jobs: int = 1000) -> int:
        """Process due jobs one at a time until none remain; return the count."""
        count = 0
        while count < max_jobs:
            if await self.run_once() is None:
                break
            count += 1
        return count

    async def process(self, job: Job) -> Job | None:
        """Run one attempt for an ACTIVE job and record the outcome."""
        logger.info(
            "Processing job %s (%s/%s), attempt %d/%d",
            job.id, job.client_id, job.packet_type, job.attempts + 1, job.max_attempts,
        )
        try:
            output_ref = await asyncio.wait_for(self._execute(job), timeout=self.job_timeout)
        except asyncio.TimeoutError:
            return await self._queue.fail(job.id, JobTimeoutError(job.id, self.job_timeout))
        except Exception as exc:
            logger.debug("Job %s attempt failed", job.id, exc_info=True)
            return await self._queue.fail(job.id, exc)

        completed = await self._queue.complete(job.id, output_ref)
        if completed is not None and self._notifier is not None:
            try:
                await self._notifier.packet_ready(completed, output_ref)
            except Exception:
                logger.exception("packet_ready notification failed for job %s", job.id)
        return completed

    async def _execute(self, job: Job) -> str:
        packet = self._generator.generate(job)
        return await self._sink.save(job, packet)
