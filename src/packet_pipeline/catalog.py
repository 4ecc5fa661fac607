"""CatalogStore — loads the intake and template catalog from ``v1/``.

This is the single source of truth for question blocks, intake paths, and
packet templates at runtime.  The store is loaded once at startup.

Layout::

    v1/
      blocks.yaml          # list of question blocks
      paths.yaml           # one intake path per client type
      templates/*.yaml     # one packet template per file

Usage::

    catalog = CatalogStore()        # defaults to v1/ relative to repo root
    catalog.load()

    path = catalog.get_path("FULL_PROGRAM")
    blocks = catalog.blocks_for_path(path)
    template = catalog.select_template("NUTRITION", "FULL_PROGRAM")
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Optional

import yaml

from packet_pipeline.errors import TemplateNotFoundError, UnknownClientTypeError
from packet_pipeline.models.question import Question, QuestionBlock, question_mapper
from packet_pipeline.models.rule import IntakePath
from packet_pipeline.models.template import PacketTemplate

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Utility helpers
# ---------------------------------------------------------------------------

def find_repo_root(start: Optional[Path] = None) -> Path:
    """Walk upwards from *start* to find the repo root (dir with pyproject.toml or .git).

    Falls back to cwd if no marker is found.
    """
    p = (start or Path(__file__).resolve()).parent
    for parent in [p, *p.parents]:
        if (parent / "pyproject.toml").exists() or (parent / ".git").exists():
            return parent
    return Path.cwd()


def load_yaml(path: Path | str) -> Any:
    """Load a single YAML file and return the parsed contents."""
    if isinstance(path, str):
        path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Missing YAML file: {path}")
    with path.open("r", encoding="utf-8") as f:
        return yaml.safe_load(f)


def parse_question(raw: dict[str, Any]) -> Question:
    """Build a typed question from its YAML mapping."""
    qtype = raw.get("question_type")
    cls = question_mapper.get(qtype)
    if cls is None:
        raise ValueError(f"Unknown question_type {qtype!r} for question {raw.get('id')!r}")
    return cls(**raw)


def parse_block(raw: dict[str, Any]) -> QuestionBlock:
    questions = [parse_question(q) for q in raw.get("questions", [])]
    return QuestionBlock(**{**raw, "questions": questions})


# ---------------------------------------------------------------------------
# CatalogStore
# ---------------------------------------------------------------------------

class CatalogStore:
    """Loads all YAML from ``v1/`` and provides typed lookup.

    Attributes populated after :meth:`load`:

        blocks     — dict[block_id, QuestionBlock] in file order
        paths      — dict[client_type, IntakePath]
        templates  — list[PacketTemplate] in file-name order
    """

    def __init__(self, catalog_dir: str | Path | None = None) -> None:
        if catalog_dir is None:
            catalog_dir = find_repo_root() / "v1"
        self._base = Path(catalog_dir)

        self.blocks: dict[str, QuestionBlock] = {}
        self.paths: dict[str, IntakePath] = {}
        self.templates: list[PacketTemplate] = []

        # question id -> owning block id
        self._question_block: dict[str, str] = {}

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def load(self) -> None:
        """Parse every catalog file into typed models.

        Raises ``FileNotFoundError`` for missing files and ``ValueError`` for
        unknown question types, duplicate ids, or paths naming unknown blocks.
        """
        self._load_blocks()
        self._load_paths()
        self._load_templates()
        logger.info(
            "CatalogStore loaded: %d blocks, %d paths, %d templates",
            len(self.blocks),
            len(self.paths),
            len(self.templates),
        )

    def _load_blocks(self) -> None:
        for raw in load_yaml(self._base / "blocks.yaml"):
            block = parse_block(raw)
            if block.id in self.blocks:
                raise ValueError(f"Duplicate block id {block.id!r}")
            for q in block.questions:
                if q.id in self._question_block:
                    raise ValueError(
                        f"Question {q.id!r} appears in blocks "
                        f"{self._question_block[q.id]!r} and {block.id!r}"
                    )
                self._question_block[q.id] = block.id
            self.blocks[block.id] = block

    def _load_paths(self) -> None:
        for raw in load_yaml(self._base / "paths.yaml"):
            path = IntakePath(**raw)
            unknown = [bid for bid in path.block_ids if bid not in self.blocks]
            if unknown:
                raise ValueError(f"Path {path.id!r} references unknown blocks: {unknown}")
            self.paths[path.client_type] = path

    def _load_templates(self) -> None:
        template_dir = self._base / "templates"
        for file in sorted(template_dir.glob("*.yaml")):
            raw = load_yaml(file)
            template = PacketTemplate(**raw)
            orphans = template.orphan_block_ids()
            if orphans:
                logger.debug("Template %s has orphan blocks: %s", template.id, orphans)
            self.templates.append(template)

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def get_path(self, client_type: str) -> IntakePath:
        path = self.paths.get(client_type)
        if path is None:
            raise UnknownClientTypeError(client_type)
        return path

    def blocks_for_path(self, path: IntakePath) -> list[QuestionBlock]:
        """Blocks on *path* in display order."""
        return [self.blocks[bid] for bid in path.block_ids]

    def block_of(self, question_id: str) -> str | None:
        """Id of the block containing *question_id*, if any."""
        return self._question_block.get(question_id)

    def select_template(
        self, packet_type: str, client_type: str | None = None
    ) -> PacketTemplate:
        """Pick the template for a packet type.

        A template scoped to *client_type* wins over the default one.

        Raises:
            TemplateNotFoundError: neither exists
        """
        candidates = [t for t in self.templates if t.packet_type == packet_type]
        for t in candidates:
            if client_type is not None and t.client_type == client_type:
                return t
        for t in candidates:
            if t.is_default or t.client_type is None:
                return t
        raise TemplateNotFoundError(packet_type, client_type)
