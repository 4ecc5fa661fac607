"""TemplateRenderer — substitutes ``{{scope.path}}`` placeholders into packets.

Rendering rules:

  - A present value is formatted to text (see ``format_value``).
  - A missing value renders as "" only if its path is declared optional on
    the template or the block; otherwise ``MissingPlaceholderError`` names
    the path.
  - A placeholder without a ``scope.path`` shape raises
    ``PlaceholderSyntaxError``.
  - Structured blocks (table, list, chart) resolve ``data_source`` to a
    list or mapping and carry it as ``data``; any other shape raises
    ``DataSourceError``.
  - Sections and blocks with ``visible_when`` are rendered only if the
    predicate holds against the ``responses`` scope.
  - Blocks not referenced by any section are ignored.  A section that
    references an unknown block skips it with a warning.

Rendering is a pure function of (template, context): the same inputs give
byte-identical output.
"""

from __future__ import annotations

import json
import logging
import re
from datetime import date, datetime
from typing import AbstractSet, Any

from packet_pipeline.context import MISSING, TemplateContext
from packet_pipeline.errors import (
    DataSourceError,
    MissingPlaceholderError,
    PlaceholderSyntaxError,
)
from packet_pipeline.evaluator import ConditionalEvaluator
from packet_pipeline.models.template import (
    STRUCTURED_KINDS,
    ContentBlock,
    PacketTemplate,
    RenderedBlock,
    RenderedPacket,
    RenderedSection,
)

logger = logging.getLogger(__name__)

# {{ scope.path }} with optional whitespace inside the braces
PLACEHOLDER_RE = re.compile(r"\{\{\s*([^{}]*?)\s*\}\}")
_PATH_RE = re.compile(r"^[A-Za-z_][\w-]*(?:\.[\w-]+)+$")


def extract_placeholders(text: str) -> list[str]:
    """All placeholder paths in *text*, in order of appearance."""
    return [m.group(1) for m in PLACEHOLDER_RE.finditer(text)]


def format_value(value: Any) -> str:
    """Render a resolved context value as text.

    Integers (and integral floats) print without decimals, other floats
    with two.  Booleans print as yes/no, dates in ISO format, and lists or
    mappings as compact JSON with sorted keys.
    """
    if isinstance(value, bool):
        return "yes" if value else "no"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        return str(int(value)) if value.is_integer() else f"{value:.2f}"
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (dict, list, tuple)):
        return json.dumps(value, sort_keys=True, separators=(",", ":"), default=str)
    return str(value)


class TemplateRenderer:
    """Renders ``PacketTemplate`` objects against a ``TemplateContext``."""

    def __init__(self, evaluator: ConditionalEvaluator | None = None) -> None:
        self._evaluator = evaluator or ConditionalEvaluator()

    def render(self, template: PacketTemplate, context: TemplateContext) -> RenderedPacket:
        """Render every visible section of *template*.

        Raises:
            MissingPlaceholderError: a required placeholder or data source
                did not resolve
            PlaceholderSyntaxError: a placeholder is not ``scope.path``
            DataSourceError: a structured block's data is the wrong shape
        """
        optional = frozenset(template.optional_paths)
        blocks = template.block_map()
        responses = context.get("responses")
        if responses is MISSING:
            responses = {}

        orphans = template.orphan_block_ids()
        if orphans:
            logger.debug("Template %s: %d orphan block(s) not rendered: %s",
                         template.id, len(orphans), orphans)

        sections: list[RenderedSection] = []
        for section in template.sections:
            if section.visible_when is not None and not self._evaluator.evaluate(
                section.visible_when, responses
            ):
                continue

            rendered: list[RenderedBlock] = []
            for block_id in section.content_block_ids:
                block = blocks.get(block_id)
                if block is None:
                    logger.warning(
                        "Template %s section %s references unknown block %s; skipping",
                        template.id, section.id, block_id,
                    )
                    continue
                if block.visible_when is not None and not self._evaluator.evaluate(
                    block.visible_when, responses
                ):
                    continue
                rendered.append(
                    self._render_block(block, context, optional | set(block.optional_paths))
                )

            sections.append(
                RenderedSection(
                    id=section.id,
                    title=self.substitute(section.title, context, optional, section.id),
                    description=self.substitute(
                        section.description, context, optional, section.id
                    ),
                    blocks=rendered,
                )
            )

        return RenderedPacket(
            template_id=template.id,
            packet_type=template.packet_type,
            title=self.substitute(template.name, context, optional, template.id),
            sections=sections,
        )

    # ------------------------------------------------------------------
    # Substitution
    # ------------------------------------------------------------------

    def substitute(
        self,
        text: str,
        context: TemplateContext,
        optional: AbstractSet[str] = frozenset(),
        block_id: str | None = None,
    ) -> str:
        """Replace every placeholder in *text*."""

        def _replace(match: re.Match[str]) -> str:
            path = match.group(1)
            if not _PATH_RE.match(path):
                raise PlaceholderSyntaxError(path, block_id)
            value = context.get(path)
            if value is MISSING:
                if path in optional:
                    return ""
                raise MissingPlaceholderError(path, block_id)
            return format_value(value)

        return PLACEHOLDER_RE.sub(_replace, text)

    def _render_block(
        self,
        block: ContentBlock,
        context: TemplateContext,
        optional: AbstractSet[str],
    ) -> RenderedBlock:
        text = self.substitute(block.content, context, optional, block.id)
        data: Any = None

        if block.data_source:
            path = block.data_source.strip()
            value = context.get(path)
            if value is MISSING:
                if path not in optional:
                    raise MissingPlaceholderError(path, block.id)
                value = [] if block.kind in STRUCTURED_KINDS else ""

            if block.kind in STRUCTURED_KINDS:
                if not isinstance(value, (list, tuple, dict)):
                    raise DataSourceError(path, block.kind, type(value).__name__)
                # Round-trip through JSON so the payload is plain and detached
                data = json.loads(json.dumps(value, sort_keys=True, default=str))
            elif not text:
                text = format_value(value)

        return RenderedBlock(
            id=block.id,
            kind=block.kind,
            text=text,
            data=data,
            formatting=dict(block.formatting),
        )
