"""Markdown export and the in-process adapters."""

import logging

import pytest

from packet_pipeline.adapters import LoggingNotifier, MemoryPacketSink
from packet_pipeline.export import PacketExporter
from packet_pipeline.models.job import EscalationPayload, Job
from packet_pipeline.models.template import RenderedBlock, RenderedPacket, RenderedSection

from conftest import START, make_snapshot


def _packet(*blocks, description=""):
    return RenderedPacket(
        template_id="t1",
        packet_type="NUTRITION",
        title="Nutrition Plan for Jane",
        sections=[RenderedSection(id="s", title="Macros", description=description, blocks=list(blocks))],
    )


@pytest.fixture
def exporter():
    return PacketExporter()


# =====================================================================
# Block flattening
# =====================================================================


class TestBlockLines:

    def test_text(self, exporter):
        assert exporter.block_lines(RenderedBlock(id="b", kind="text", text="a\nb")) == ["a", "b"]

    def test_heading_and_divider(self, exporter):
        assert exporter.block_lines(RenderedBlock(id="h", kind="heading", text="Safety")) == ["### Safety"]
        assert exporter.block_lines(RenderedBlock(id="d", kind="divider")) == ["---"]

    def test_image(self, exporter):
        block = RenderedBlock(id="i", kind="image", text="Banner", formatting={"src": "b.png"})
        assert exporter.block_lines(block) == ["![Banner](b.png)"]

    def test_table_with_columns(self, exporter):
        block = RenderedBlock(
            id="m", kind="table",
            data=[{"name": "Protein", "grams": 150}, {"name": "Fats|Oils", "grams": 70}],
            formatting={"columns": ["name", "grams"], "headers": ["Macro", "Grams"]},
        )
        assert exporter.block_lines(block) == [
            "| Macro | Grams |",
            "|---|---|",
            "| Protein | 150 |",
            "| Fats\\|Oils | 70 |",
        ]

    def test_table_from_mapping(self, exporter):
        block = RenderedBlock(id="v", kind="table", data={"sets": "3-4"})
        assert exporter.block_lines(block) == ["| key | value |", "|---|---|", "| sets | 3-4 |"]

    def test_empty_table(self, exporter):
        assert exporter.block_lines(RenderedBlock(id="t", kind="table", data=[])) == []

    def test_lists(self, exporter):
        bullets = RenderedBlock(id="l", kind="list", data=["a", "b"])
        numbered = RenderedBlock(
            id="n", kind="list", text="Steps", data=["a", "b"],
            formatting={"list_style": "numbered"},
        )
        assert exporter.block_lines(bullets) == ["- a", "- b"]
        assert exporter.block_lines(numbered) == ["Steps", "", "1. a", "2. b"]


# =====================================================================
# Documents
# =====================================================================


class TestMarkdown:

    def test_document_layout(self, exporter):
        md = exporter.to_markdown(_packet(
            RenderedBlock(id="b", kind="text", text="Eat well."),
            description="Daily targets",
        ))
        assert md.startswith("# Nutrition Plan for Jane\n")
        assert "## Macros" in md
        assert "Daily targets" in md
        assert "Eat well." in md

    def test_export_is_deterministic(self, exporter):
        packet = _packet(RenderedBlock(id="l", kind="list", data=["x"]))
        assert exporter.to_markdown(packet) == exporter.to_markdown(packet)


# =====================================================================
# Adapters
# =====================================================================


def _job():
    return Job(
        id="job1",
        client_id="c1",
        packet_type="NUTRITION",
        max_attempts=3,
        snapshot=make_snapshot(),
        created_at=START,
        updated_at=START,
    )


class TestAdapters:

    @pytest.mark.asyncio
    async def test_memory_sink(self):
        sink = MemoryPacketSink()
        packet = _packet()
        ref = await sink.save(_job(), packet)
        assert ref == "memory://c1/NUTRITION/job1"
        assert sink.packets[ref] == packet

    @pytest.mark.asyncio
    async def test_memory_sink_exports_markdown(self, tmp_path):
        sink = MemoryPacketSink(export_dir=tmp_path / "out")
        await sink.save(_job(), _packet(RenderedBlock(id="b", kind="text", text="Hello")))
        written = (tmp_path / "out" / "c1-NUTRITION.md").read_text(encoding="utf-8")
        assert "Hello" in written

    @pytest.mark.asyncio
    async def test_logging_notifier(self, caplog):
        notifier = LoggingNotifier()
        payload = EscalationPayload(
            job_id="job1", client_id="c1", client_name="Jane", client_email="",
            packet_type="NUTRITION", error_message="boom", retry_count=3,
        )
        with caplog.at_level(logging.INFO, logger="packet_pipeline.adapters"):
            await notifier.packet_ready(_job(), "memory://x")
            await notifier.escalate(payload)
        assert "Nutrition Plan ready for client c1" in caplog.text
        assert "ESCALATION" in caplog.text
        assert '"retryCount":3' in caplog.text
