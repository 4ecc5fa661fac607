"""Packet export.

Provides ``PacketExporter``, a Jinja2-based renderer that turns a
``RenderedPacket`` into a markdown document for download or hand-off to a
PDF converter.
"""

from packet_pipeline.export.exporter import PacketExporter

__all__ = ["PacketExporter"]
