"""In-process implementations of the pipeline's edge interfaces.

Used by tests, the simulation script, and single-node deployments that do
not configure the PostgreSQL sink.  Production deployments plug in their
own ``Notifier`` (email, chat) and usually ``packet_db.SqlPacketSink``.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from packet_pipeline.constants import PACKET_NAMES
from packet_pipeline.export import PacketExporter
from packet_pipeline.interfaces import Notifier, PacketSink, ProgressStore
from packet_pipeline.models.job import EscalationPayload, Job
from packet_pipeline.models.template import RenderedPacket

logger = logging.getLogger(__name__)


class MemoryPacketSink(PacketSink):
    """Keeps rendered packets in a dict keyed by output reference.

    If *export_dir* is given, each packet is also written there as markdown
    (``<client_id>-<packet_type>.md``).
    """

    def __init__(self, export_dir: str | Path | None = None) -> None:
        self.packets: dict[str, RenderedPacket] = {}
        self._export_dir = Path(export_dir) if export_dir is not None else None
        self._exporter = PacketExporter() if self._export_dir is not None else None

    async def save(self, job: Job, packet: RenderedPacket) -> str:
        ref = f"memory://{job.client_id}/{job.packet_type}/{job.id}"
        self.packets[ref] = packet
        if self._exporter is not None:
            self._export_dir.mkdir(parents=True, exist_ok=True)
            target = self._export_dir / f"{job.client_id}-{job.packet_type}.md"
            target.write_text(self._exporter.to_markdown(packet), encoding="utf-8")
            logger.debug("Exported %s to %s", ref, target)
        return ref


class LoggingNotifier(Notifier):
    """Writes notifications to the log instead of delivering them."""

    async def packet_ready(self, job: Job, output_ref: str) -> None:
        name = PACKET_NAMES.get(job.packet_type, job.packet_type)
        logger.info("%s ready for client %s: %s", name, job.client_id, output_ref)

    async def escalate(self, payload: EscalationPayload) -> None:
        logger.error(
            "ESCALATION: %s",
            payload.model_dump_json(by_alias=True),
        )


class InMemoryProgressStore(ProgressStore):
    """Unsubmitted intake answers keyed by client id."""

    def __init__(self) -> None:
        self._data: dict[str, dict[str, Any]] = {}

    async def save_progress(
        self, client_id: str, client_type: str, responses: dict[str, Any]
    ) -> None:
        self._data[client_id] = {"client_type": client_type, "responses": dict(responses)}

    async def load_progress(self, client_id: str) -> dict[str, Any] | None:
        entry = self._data.get(client_id)
        return dict(entry) if entry is not None else None
