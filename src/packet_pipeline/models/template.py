"""Packet template models and their rendered counterparts.

A template owns a pool of ``ContentBlock`` objects and an ordered list of
``PacketSection`` objects that reference blocks by id.  Blocks not named by
any section are orphans and are never rendered.

Placeholders use the ``{{scope.path}}`` grammar, e.g. ``{{client.fullName}}``
or ``{{calculated.volumeRecommendations.repsPerSet}}``.
"""

from __future__ import annotations

import hashlib
import json
from typing import Any, List, Literal, Optional

from pydantic import BaseModel, Field, model_validator

from .rule import ConditionGroup

BlockKind = Literal["text", "heading", "table", "list", "chart", "image", "divider"]

# Kinds whose payload comes from ``data_source`` rather than ``content``.
STRUCTURED_KINDS: frozenset[str] = frozenset({"table", "list", "chart"})


class ContentBlock(BaseModel):
    """One renderable unit of a packet."""

    id: str
    kind: BlockKind = "text"
    content: str = ""
    # Dotted context path resolving to a list/mapping (table, list, chart)
    data_source: Optional[str] = None
    # Presentation hints, e.g. {"headers": [...], "columns": [...]} or
    # {"list_style": "numbered"}
    formatting: dict[str, Any] = Field(default_factory=dict)
    # Placeholder paths that render as "" when absent instead of failing
    optional_paths: List[str] = Field(default_factory=list)
    visible_when: Optional[ConditionGroup] = None


class PacketSection(BaseModel):
    """An ordered group of content block references."""

    id: str
    title: str
    description: str = ""
    content_block_ids: List[str]
    visible_when: Optional[ConditionGroup] = None


class PacketTemplate(BaseModel):
    """Template for one packet type, optionally scoped to a client segment."""

    id: str
    name: str
    packet_type: str
    # When set, the template applies only to this client type
    client_type: Optional[str] = None
    is_default: bool = False
    optional_paths: List[str] = Field(default_factory=list)
    sections: List[PacketSection]
    content_blocks: List[ContentBlock]

    @model_validator(mode="after")
    def _chk_ids(self):
        ids = [b.id for b in self.content_blocks]
        if len(ids) != len(set(ids)):
            raise ValueError(f"Template '{self.id}' has duplicate content block ids")
        return self

    def block_map(self) -> dict[str, ContentBlock]:
        """Content blocks keyed by id."""
        return {b.id: b for b in self.content_blocks}

    def orphan_block_ids(self) -> list[str]:
        """Blocks defined in the pool but referenced by no section."""
        referenced = {bid for s in self.sections for bid in s.content_block_ids}
        return [b.id for b in self.content_blocks if b.id not in referenced]


# --- Rendered output ---

class RenderedBlock(BaseModel):
    """A content block with every placeholder substituted."""

    id: str
    kind: BlockKind
    text: str = ""
    data: Any = None
    formatting: dict[str, Any] = Field(default_factory=dict)


class RenderedSection(BaseModel):
    id: str
    title: str
    description: str = ""
    blocks: List[RenderedBlock]


class RenderedPacket(BaseModel):
    """Final document produced from a template and a context."""

    template_id: str
    packet_type: str
    title: str
    sections: List[RenderedSection]

    def checksum(self) -> str:
        """Stable sha256 digest of the rendered content."""
        payload = json.dumps(self.model_dump(mode="json"), sort_keys=True)
        return hashlib.sha256(payload.encode("utf-8")).hexdigest()
