"""Initial schema with catalog and engine tables

Revision ID: 001
Revises:
Create Date: 2026-10-18 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Create enum using raw SQL with IF NOT EXISTS
    op.execute("""
        DO $$ BEGIN
            CREATE TYPE job_state AS ENUM ('waiting', 'delayed', 'active', 'completed', 'failed', 'paused');
        EXCEPTION
            WHEN duplicate_object THEN null;
        END $$;
    """)

    # Catalog store
    op.create_table(
        "catalog_sets",
        sa.Column("name", sa.String(512), nullable=False),
        sa.Column("member", sa.String(512), nullable=False),
        sa.PrimaryKeyConstraint("name", "member"),
    )

    op.create_table(
        "catalog_entries",
        sa.Column("name", sa.String(512), nullable=False),
        sa.Column("field", sa.String(512), nullable=False),
        sa.Column("value", sa.String(1024), nullable=False),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.PrimaryKeyConstraint("name", "field"),
    )

    # Queue engine
    op.create_table(
        "engine_queues",
        sa.Column("name", sa.String(512), nullable=False),
        sa.Column("paused", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.PrimaryKeyConstraint("name"),
    )

    op.create_table(
        "engine_jobs",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("queue_name", sa.String(512), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("payload", postgresql.JSONB, nullable=False, server_default="{}"),
        sa.Column(
            "state",
            postgresql.ENUM(
                "waiting", "delayed", "active", "completed", "failed", "paused",
                name="job_state",
                create_type=False,
            ),
            nullable=False,
            server_default="waiting",
        ),
        sa.Column("run_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("delay_ms", sa.Integer, nullable=True),
        sa.Column("repeat_cron", sa.String(255), nullable=True),
        sa.Column("repeat_limit", sa.Integer, nullable=True),
        sa.Column("repeat_key", sa.String(36), nullable=True),
        sa.Column("repeat_count", sa.Integer, nullable=False, server_default="0"),
        sa.Column("attempts_made", sa.Integer, nullable=False, server_default="0"),
        sa.Column("lease_expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("processed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("finished_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column("last_error", sa.Text, nullable=True),
        sa.Column("result", postgresql.JSONB, nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )

    # Create indexes
    op.create_index("ix_engine_jobs_queue_name", "engine_jobs", ["queue_name"])
    op.create_index("ix_engine_jobs_dispatch", "engine_jobs", ["queue_name", "state", "run_at"])

    # Create partial index for lease expiry
    op.execute("""
        CREATE INDEX ix_engine_jobs_lease_expiry
        ON engine_jobs (lease_expires_at)
        WHERE state = 'active'
    """)


def downgrade() -> None:
    # Drop indexes
    op.execute("DROP INDEX IF EXISTS ix_engine_jobs_lease_expiry")
    op.drop_index("ix_engine_jobs_dispatch")
    op.drop_index("ix_engine_jobs_queue_name")

    # Drop tables
    op.drop_table("engine_jobs")
    op.drop_table("engine_queues")
    op.drop_table("catalog_entries")
    op.drop_table("catalog_sets")

    # Drop enum
    op.execute("DROP TYPE IF EXISTS job_state")
