"""Index ACTIVE jobs by start time.

The queue reclaims ACTIVE jobs whose attempt started longer ago than the
active lease, and the monitor reports the oldest one; both read
``started_at`` over ACTIVE rows only.

Revision ID: 20261019_active_started
Revises: 20261001_initial
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "20261019_active_started"
down_revision = "20261001_initial"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_index(
        "ix_active_started",
        "generation_jobs",
        ["started_at"],
        postgresql_where=sa.text("state = 'active'"),
    )


def downgrade() -> None:
    op.drop_index("ix_active_started", table_name="generation_jobs")
