"""Repository for workflow snapshot persistence.

Uses advanced-alchemy's async repository pattern.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from advanced_alchemy.filters import OrderBy
from advanced_alchemy.repository import SQLAlchemyAsyncRepository

from litestar_sdlc.db.models import WorkflowSnapshotModel

if TYPE_CHECKING:
    from collections.abc import Sequence

    from litestar_sdlc.core.types import MachineState

__all__ = ["WorkflowSnapshotRepository"]


class WorkflowSnapshotRepository(SQLAlchemyAsyncRepository[WorkflowSnapshotModel]):
    """Repository for workflow snapshot CRUD operations."""

    model_type = WorkflowSnapshotModel

    async def find(
        self,
        state: MachineState | None = None,
        workflow_id: str | None = None,
    ) -> Sequence[WorkflowSnapshotModel]:
        """Find snapshots by machine state and workflow definition.

        Args:
            state: Optional machine state filter.
            workflow_id: Optional workflow definition filter.

        Returns:
            Matching snapshots, oldest first.
        """
        conditions = []

        if state is not None:
            conditions.append(WorkflowSnapshotModel.state == state)

        if workflow_id is not None:
            conditions.append(WorkflowSnapshotModel.workflow_id == workflow_id)

        return await self.list(*conditions, OrderBy(field_name="created_at", sort_order="asc"))
