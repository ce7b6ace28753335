"""
SQLAlchemy database models.

Two groups of tables share one metadata:
- catalog_sets / catalog_entries back the durable catalog store
- engine_queues / engine_jobs back the SQL queue engine
"""

from datetime import datetime
from uuid import uuid4

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Enum,
    Index,
    Integer,
    String,
    Text,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from tenant_scheduler.constants import JobState

# JSONB on PostgreSQL, plain JSON elsewhere
JSONType = JSON().with_variant(JSONB(), "postgresql")


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


class CatalogSetMember(Base):
    """Membership of a value in a named catalog set."""

    __tablename__ = "catalog_sets"

    name: Mapped[str] = mapped_column(String(512), primary_key=True)
    member: Mapped[str] = mapped_column(String(512), primary_key=True)


class CatalogEntry(Base):
    """Field/value pair of a named catalog map."""

    __tablename__ = "catalog_entries"

    name: Mapped[str] = mapped_column(String(512), primary_key=True)
    field: Mapped[str] = mapped_column(String(512), primary_key=True)
    value: Mapped[str] = mapped_column(String(1024), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )


class EngineQueue(Base):
    """A queue known to the SQL queue engine."""

    __tablename__ = "engine_queues"

    name: Mapped[str] = mapped_column(String(512), primary_key=True)
    paused: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )


class EngineJob(Base):
    """
    Job row owned by the SQL queue engine.

    Key invariants:
    - state follows the JobState machine
    - lease_expires_at is set only while the job is ACTIVE
    - repeat_* columns are set only for recurring occurrences
    """

    __tablename__ = "engine_jobs"

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: uuid4().hex,
    )
    queue_name: Mapped[str] = mapped_column(String(512), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    payload: Mapped[dict] = mapped_column(JSONType, nullable=False, default=dict)

    state: Mapped[JobState] = mapped_column(
        Enum(JobState, name="job_state", create_constraint=True, values_callable=lambda x: [e.value for e in x]),
        nullable=False,
        default=JobState.WAITING,
    )

    # Scheduling
    run_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    delay_ms: Mapped[int | None] = mapped_column(Integer, nullable=True)
    repeat_cron: Mapped[str | None] = mapped_column(String(255), nullable=True)
    repeat_limit: Mapped[int | None] = mapped_column(Integer, nullable=True)
    repeat_key: Mapped[str | None] = mapped_column(String(36), nullable=True)
    repeat_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Execution tracking
    attempts_made: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    lease_expires_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    processed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    finished_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    result: Mapped[dict | None] = mapped_column(JSONType, nullable=True)

    __table_args__ = (
        # Index for dispatch polling
        Index("ix_engine_jobs_dispatch", "queue_name", "state", "run_at"),
        # Index for lease expiry checks
        Index(
            "ix_engine_jobs_lease_expiry",
            "lease_expires_at",
            postgresql_where=(Column("state") == JobState.ACTIVE.value),
        ),
    )

    def __repr__(self) -> str:
        return (
            f"EngineJob(id={self.id}, queue={self.queue_name}, "
            f"name={self.name}, state={self.state})"
        )
