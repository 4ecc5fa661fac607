"""Abstract interfaces for the collaborators at the edges of the pipeline.

These ABCs define the contract that external implementations must fulfil.
The SDK ships in-memory/logging implementations in ``adapters``; the
``packet_db`` package provides a PostgreSQL-backed packet sink.

Typical integration flow::

    queue = JobQueue(InMemoryJobStore(), notifier=my_notifier)
    pool = WorkerPool(queue, PacketGenerator(catalog), sink=my_sink,
                      notifier=my_notifier)
    await pool.start()
    # ... IntakeService.submit() enqueues jobs; the pool renders them,
    # hands each packet to sink.save() and calls notifier.packet_ready() ...
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from packet_pipeline.models.job import EscalationPayload, Job
from packet_pipeline.models.template import RenderedPacket


class PacketSink(ABC):
    """Durable destination for rendered packets."""

    @abstractmethod
    async def save(self, job: Job, packet: RenderedPacket) -> str:
        """Persist a rendered packet.

        Parameters
        ----------
        job:
            The ACTIVE job that produced the packet.
        packet:
            Fully rendered packet content.

        Returns
        -------
        str
            An opaque reference (id, path, URL) stored on the completed job.
            Raising marks the attempt as failed and goes through retry.
        """
        ...


class Notifier(ABC):
    """Outbound notifications about job outcomes.

    Delivery transport (email, SMS, chat) is an implementation detail.
    Exceptions raised here are logged and never change job state.
    """

    @abstractmethod
    async def packet_ready(self, job: Job, output_ref: str) -> None:
        """Tell the client a packet has been generated."""
        ...

    @abstractmethod
    async def escalate(self, payload: EscalationPayload) -> None:
        """Hand a terminally failed job to a human.

        Called exactly once per job, on the transition to
        ``failed_escalated``.
        """
        ...


class ProgressStore(ABC):
    """Where in-progress (unsubmitted) intake answers are parked."""

    @abstractmethod
    async def save_progress(
        self, client_id: str, client_type: str, responses: dict[str, Any]
    ) -> None:
        ...

    @abstractmethod
    async def load_progress(self, client_id: str) -> dict[str, Any] | None:
        ...
