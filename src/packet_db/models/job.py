"""GenerationJob ORM model — one row per packet generation job.

The answer snapshot is stored as JSONB on the row so a worker can render a
packet from a single fetch.  The partial unique index on
``(client_id, packet_type)`` is what enforces "at most one in-flight job
per key" across processes.
"""

from datetime import datetime

from sqlalchemy import CheckConstraint, Index, SmallInteger, String, Text, text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from packet_db.models.base import Base, required_timestamp, optional_timestamp

IN_FLIGHT_SQL = "state IN ('pending', 'active', 'retry_scheduled')"


class GenerationJob(Base):
    __tablename__ = "generation_jobs"

    # uuid4 hex assigned by the SDK
    id: Mapped[str] = mapped_column(String(32), primary_key=True)

    # --- Dedup key ---
    client_id: Mapped[str] = mapped_column(Text, nullable=False)
    packet_type: Mapped[str] = mapped_column(String(32), nullable=False)

    # --- Lifecycle ---
    state: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    attempts: Mapped[int] = mapped_column(SmallInteger, nullable=False, default=0)
    max_attempts: Mapped[int] = mapped_column(SmallInteger, nullable=False)
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)

    # --- Input ---
    # AnswerSnapshot.model_dump(mode="json")
    snapshot: Mapped[dict] = mapped_column(JSONB, nullable=False)
    fingerprint: Mapped[str] = mapped_column(String(64), nullable=False)

    # --- Output ---
    output_ref: Mapped[str | None] = mapped_column(Text, nullable=True)
    superseded_by: Mapped[str | None] = mapped_column(String(32), nullable=True)

    # --- Timestamps ---
    created_at: Mapped[datetime] = required_timestamp()
    updated_at: Mapped[datetime] = required_timestamp()
    next_run_at: Mapped[datetime | None] = optional_timestamp()
    started_at: Mapped[datetime | None] = optional_timestamp()
    finished_at: Mapped[datetime | None] = optional_timestamp()

    __table_args__ = (
        CheckConstraint(
            "state IN ('pending', 'active', 'retry_scheduled', 'completed', "
            "'failed_escalated', 'superseded')",
            name="ck_job_state",
        ),
        CheckConstraint(
            "attempts >= 0 AND attempts <= max_attempts",
            name="ck_job_attempts_range",
        ),
        # Completed jobs must point at their rendered output
        CheckConstraint(
            "state != 'completed' OR output_ref IS NOT NULL",
            name="ck_completed_has_output",
        ),
        # At most one in-flight job per (client, packet type)
        Index(
            "uq_in_flight_job",
            "client_id",
            "packet_type",
            unique=True,
            postgresql_where=text(IN_FLIGHT_SQL),
        ),
        # Claim path: oldest pending first
        Index(
            "ix_pending_created",
            "created_at",
            postgresql_where=text("state = 'pending'"),
        ),
        # Retry promotion
        Index(
            "ix_retry_next_run",
            "next_run_at",
            postgresql_where=text("state = 'retry_scheduled'"),
        ),
        # Reclaiming abandoned attempts, and the monitor's stuck check
        Index(
            "ix_active_started",
            "started_at",
            postgresql_where=text("state = 'active'"),
        ),
        # Monitor failure-rate window and archival
        Index("ix_finished_at", "finished_at", postgresql_where=text("finished_at IS NOT NULL")),
    )

    def __repr__(self) -> str:
        return (
            f"<GenerationJob(id={self.id!r}, client={self.client_id!r}, "
            f"packet={self.packet_type!r}, state={self.state!r}, "
            f"attempts={self.attempts}/{self.max_attempts})>"
        )
