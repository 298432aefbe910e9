"""SQLAlchemy models for workflow snapshot persistence."""

from __future__ import annotations

from typing import Any

from advanced_alchemy.base import UUIDAuditBase
from sqlalchemy import JSON, Enum, Index, String
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from litestar_sdlc.core.types import MachineState

__all__ = ["JSONType", "WorkflowSnapshotModel"]


# Cross-database JSON type: uses JSONB for PostgreSQL, JSON for others (SQLite, MySQL, etc.)
JSONType = JSON().with_variant(JSONB, "postgresql")


class WorkflowSnapshotModel(UUIDAuditBase):
    """Persisted snapshot of one workflow instance.

    The row id is the workflow instance id. ``workflow_id``, ``state`` and
    ``current_phase_id`` are denormalized from the document for filtering.

    Attributes:
        workflow_id: Id of the workflow definition.
        state: Machine state of the instance when the snapshot was written.
        current_phase_id: Current phase of the instance.
        document: The instance serialized by :func:`~litestar_sdlc.persistence.instance_to_dict`.
    """

    __tablename__ = "sdlc_workflow_snapshots"
    __table_args__ = (
        Index("ix_sdlc_workflow_snapshots_workflow_id", "workflow_id"),
        Index("ix_sdlc_workflow_snapshots_state", "state"),
    )

    workflow_id: Mapped[str] = mapped_column(String(255))
    state: Mapped[MachineState] = mapped_column(
        Enum(MachineState, native_enum=False, length=50),
        default=MachineState.IDLE,
    )
    current_phase_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    document: Mapped[dict[str, Any]] = mapped_column(JSONType, default=dict)
