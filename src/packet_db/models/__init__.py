"""ORM models for packet_db."""

from packet_db.models.base import Base
from packet_db.models.job import GenerationJob
from packet_db.models.packet import RenderedPacketRow

__all__ = ["Base", "GenerationJob", "RenderedPacketRow"]
