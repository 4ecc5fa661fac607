"""RenderedPacketRow ORM model — durable copy of each rendered packet."""

import uuid
from datetime import datetime

from sqlalchemy import Index, String, Text
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column

from packet_db.models.base import Base, required_timestamp


class RenderedPacketRow(Base):
    """One row per successful generation attempt.

    Not foreign-keyed to ``generation_jobs`` so that archiving old jobs
    keeps the packets.
    """

    __tablename__ = "rendered_packets"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    job_id: Mapped[str] = mapped_column(String(32), nullable=False)
    client_id: Mapped[str] = mapped_column(Text, nullable=False)
    packet_type: Mapped[str] = mapped_column(String(32), nullable=False)
    template_id: Mapped[str] = mapped_column(Text, nullable=False)
    checksum: Mapped[str] = mapped_column(String(64), nullable=False)
    # RenderedPacket.model_dump(mode="json")
    content: Mapped[dict] = mapped_column(JSONB, nullable=False)
    created_at: Mapped[datetime] = required_timestamp()

    __table_args__ = (
        Index("ix_packets_client", "client_id", "packet_type", "created_at"),
        Index("ix_packets_job", "job_id"),
    )
