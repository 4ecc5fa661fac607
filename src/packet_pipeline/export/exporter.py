"""PacketExporter — Jinja2-based markdown export of rendered packets.

Each block is flattened into markdown lines in Python (tables, lists,
headings) and the ``template/`` directory supplies the document layout.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import jinja2

from packet_pipeline.models.template import RenderedBlock, RenderedPacket
from packet_pipeline.renderer import format_value


def _cell(value: Any) -> str:
    return format_value(value).replace("|", "\\|").replace("\n", " ")


class PacketExporter:
    """Renders ``RenderedPacket`` objects to markdown.

    Args:
        template_dir: optional override for the template directory.
            Defaults to ``template/`` sibling of this module.
    """

    def __init__(self, template_dir: Path | None = None) -> None:
        if template_dir is None:
            template_dir = Path(__file__).parent / "template"
        self._env = jinja2.Environment(
            loader=jinja2.FileSystemLoader(str(template_dir)),
            trim_blocks=True,
            lstrip_blocks=True,
            keep_trailing_newline=True,
        )

    def to_markdown(self, packet: RenderedPacket, template_name: str = "packet.md.jinja2") -> str:
        template = self._env.get_template(template_name)
        sections = [
            {
                "title": s.title,
                "description": s.description,
                "blocks": [{"kind": b.kind, "lines": self.block_lines(b)} for b in s.blocks],
            }
            for s in packet.sections
        ]
        return template.render(packet=packet, sections=sections)

    # --- Block flattening ---

    def block_lines(self, block: RenderedBlock) -> list[str]:
        """Markdown lines for a single rendered block."""
        if block.kind == "divider":
            return ["---"]
        if block.kind == "heading":
            return [f"### {block.text}"] if block.text else []
        if block.kind == "image":
            src = block.formatting.get("src", "")
            return [f"![{block.text}]({src})"]
        if block.kind in ("table", "chart"):
            return self._caption(block) + self._table_lines(block)
        if block.kind == "list":
            return self._caption(block) + self._list_lines(block)
        return block.text.splitlines() if block.text else []

    @staticmethod
    def _caption(block: RenderedBlock) -> list[str]:
        return [block.text, ""] if block.text else []

    @staticmethod
    def _table_lines(block: RenderedBlock) -> list[str]:
        data = block.data
        if isinstance(data, dict):
            rows: list[Any] = [{"key": k, "value": v} for k, v in data.items()]
            default_columns = ["key", "value"]
        else:
            rows = list(data or [])
            first = rows[0] if rows and isinstance(rows[0], dict) else {}
            default_columns = list(first)

        columns = block.formatting.get("columns") or default_columns
        headers = block.formatting.get("headers") or columns
        if not columns:
            return []

        lines = [
            "| " + " | ".join(str(h) for h in headers) + " |",
            "|" + "---|" * len(headers),
        ]
        for row in rows:
            if isinstance(row, dict):
                cells = [_cell(row.get(c, "")) for c in columns]
            elif isinstance(row, (list, tuple)):
                cells = [_cell(v) for v in row]
            else:
                cells = [_cell(row)]
            lines.append("| " + " | ".join(cells) + " |")
        return lines

    @staticmethod
    def _list_lines(block: RenderedBlock) -> list[str]:
        data = block.data
        if isinstance(data, dict):
            items = [f"{k}: {format_value(v)}" for k, v in data.items()]
        else:
            items = [format_value(v) for v in (data or [])]
        numbered = block.formatting.get("list_style") == "numbered"
        return [
            f"{i}. {item}" if numbered else f"- {item}"
            for i, item in enumerate(items, start=1)
        ]
