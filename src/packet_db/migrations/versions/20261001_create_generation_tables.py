"""Create generation_jobs and rendered_packets tables.

``generation_jobs`` carries a partial unique index on
``(client_id, packet_type)`` restricted to in-flight states, which is the
database-level guarantee of one in-flight job per client and packet type.

Revision ID: 20261001_initial
Revises:
Create Date: 2026-10-01
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB, TIMESTAMP, UUID

# revision identifiers, used by Alembic.
revision = "20261001_initial"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "generation_jobs",
        sa.Column("id", sa.String(32), primary_key=True),
        sa.Column("client_id", sa.Text(), nullable=False),
        sa.Column("packet_type", sa.String(32), nullable=False),
        sa.Column("state", sa.String(20), nullable=False),
        sa.Column("attempts", sa.SmallInteger(), nullable=False),
        sa.Column("max_attempts", sa.SmallInteger(), nullable=False),
        sa.Column("last_error", sa.Text(), nullable=True),
        sa.Column("snapshot", JSONB(), nullable=False),
        sa.Column("fingerprint", sa.String(64), nullable=False),
        sa.Column("output_ref", sa.Text(), nullable=True),
        sa.Column("superseded_by", sa.String(32), nullable=True),
        sa.Column("created_at", TIMESTAMP(timezone=True), nullable=False),
        sa.Column("updated_at", TIMESTAMP(timezone=True), nullable=False),
        sa.Column("next_run_at", TIMESTAMP(timezone=True), nullable=True),
        sa.Column("started_at", TIMESTAMP(timezone=True), nullable=True),
        sa.Column("finished_at", TIMESTAMP(timezone=True), nullable=True),
        sa.CheckConstraint(
            "state IN ('pending', 'active', 'retry_scheduled', 'completed', "
            "'failed_escalated', 'superseded')",
            name="ck_job_state",
        ),
        sa.CheckConstraint(
            "attempts >= 0 AND attempts <= max_attempts",
            name="ck_job_attempts_range",
        ),
        sa.CheckConstraint(
            "state != 'completed' OR output_ref IS NOT NULL",
            name="ck_completed_has_output",
        ),
    )

    # --- In-flight dedup ---
    op.create_index(
        "uq_in_flight_job",
        "generation_jobs",
        ["client_id", "packet_type"],
        unique=True,
        postgresql_where=sa.text("state IN ('pending', 'active', 'retry_scheduled')"),
    )
    # --- Claim / promote / monitor paths ---
    op.create_index(
        "ix_pending_created",
        "generation_jobs",
        ["created_at"],
        postgresql_where=sa.text("state = 'pending'"),
    )
    op.create_index(
        "ix_retry_next_run",
        "generation_jobs",
        ["next_run_at"],
        postgresql_where=sa.text("state = 'retry_scheduled'"),
    )
    op.create_index(
        "ix_finished_at",
        "generation_jobs",
        ["finished_at"],
        postgresql_where=sa.text("finished_at IS NOT NULL"),
    )

    op.create_table(
        "rendered_packets",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("job_id", sa.String(32), nullable=False),
        sa.Column("client_id", sa.Text(), nullable=False),
        sa.Column("packet_type", sa.String(32), nullable=False),
        sa.Column("template_id", sa.Text(), nullable=False),
        sa.Column("checksum", sa.String(64), nullable=False),
        sa.Column("content", JSONB(), nullable=False),
        sa.Column("created_at", TIMESTAMP(timezone=True), nullable=False),
    )
    op.create_index(
        "ix_packets_client", "rendered_packets", ["client_id", "packet_type", "created_at"],
    )
    op.create_index("ix_packets_job", "rendered_packets", ["job_id"])


def downgrade() -> None:
    op.drop_index("ix_packets_job", table_name="rendered_packets")
    op.drop_index("ix_packets_client", table_name="rendered_packets")
    op.drop_table("rendered_packets")

    op.drop_index("ix_finished_at", table_name="generation_jobs")
    op.drop_index("ix_retry_next_run", table_name="generation_jobs")
    op.drop_index("ix_pending_created", table_name="generation_jobs")
    op.drop_index("uq_in_flight_job", table_name="generation_jobs")
    op.drop_table("generation_jobs")
