"""PacketGenerator — turns a job's answer snapshot into a rendered packet.

Steps:
  1. Build the ``client`` profile and ``calculated`` values from the
     snapshot (age is computed against the submission date)
  2. Select the template for the packet type and client segment
  3. Render it
"""

from __future__ import annotations

import logging

from packet_pipeline.calculations import calculate_values
from packet_pipeline.catalog import CatalogStore
from packet_pipeline.context import TemplateContext
from packet_pipeline.models.job import Job
from packet_pipeline.models.template import RenderedPacket
from packet_pipeline.profile import ClientProfile
from packet_pipeline.renderer import TemplateRenderer

logger = logging.getLogger(__name__)


class PacketGenerator:
    """Renders packets for jobs using templates from a ``CatalogStore``."""

    def __init__(
        self,
        catalog: CatalogStore,
        renderer: TemplateRenderer | None = None,
    ) -> None:
        self._catalog = catalog
        self._renderer = renderer or TemplateRenderer()

    def build_context(self, job: Job) -> TemplateContext:
        snapshot = job.snapshot
        profile = ClientProfile.from_answers(
            job.client_id,
            snapshot.client_type,
            snapshot.answers,
            reference_date=snapshot.submitted_at.date(),
        )
        return TemplateContext.build(
            client=profile,
            calculated=calculate_values(profile),
            responses=snapshot.answers,
            hidden_responses=snapshot.hidden_answers,
        )

    def generate(self, job: Job) -> RenderedPacket:
        """Render the packet for *job*.

        Raises whatever the template lookup or renderer raises
        (``TemplateNotFoundError``, ``RenderError`` subclasses); the worker
        pool turns those into failed attempts.
        """
        template = self._catalog.select_template(job.packet_type, job.snapshot.client_type)
        packet = self._renderer.render(template, self.build_context(job))
        logger.debug(
            "Rendered job %s with template %s: %d section(s)",
            job.id, template.id, len(packet.sections),
        )
        return packet
