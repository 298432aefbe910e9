"""SQLAlchemy-backed persistence store.

This module provides a :class:`~litestar_sdlc.core.protocols.WorkflowPersistence`
implementation writing one snapshot row per workflow instance, enabling
durability and recovery of workflow state across restarts.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import structlog

from litestar_sdlc.db.models import WorkflowSnapshotModel
from litestar_sdlc.db.repositories import WorkflowSnapshotRepository
from litestar_sdlc.exceptions import ErrorCode, StateMachineError
from litestar_sdlc.persistence.serialization import apply_updates, instance_from_dict, instance_to_dict

if TYPE_CHECKING:
    from collections.abc import Mapping
    from uuid import UUID

    from sqlalchemy.ext.asyncio import AsyncSession

    from litestar_sdlc.core.models import WorkflowInstance
    from litestar_sdlc.core.types import MachineState

__all__ = ["SQLAlchemyPersistence"]

logger = structlog.get_logger(__name__)


class SQLAlchemyPersistence:
    """Persistence store writing workflow snapshots through SQLAlchemy.

    Attributes:
        session: SQLAlchemy async session for database operations.
        auto_commit: Commit after every write.
    """

    def __init__(self, session: AsyncSession, *, auto_commit: bool = True) -> None:
        """Initialize the store.

        Args:
            session: SQLAlchemy async session.
            auto_commit: Commit after every write; disable to manage transactions yourself.
        """
        self.session = session
        self.auto_commit = auto_commit
        self._repo = WorkflowSnapshotRepository(session=session)

    async def save(self, instance: WorkflowInstance) -> None:
        """Store a snapshot of ``instance``, replacing any previous one.

        Args:
            instance: The workflow instance.
        """
        logger.debug("saving_snapshot", instance_id=str(instance.id))
        snapshot = await self._repo.get_one_or_none(id=instance.id)

        if snapshot is None:
            snapshot = WorkflowSnapshotModel(id=instance.id)
            self._fill(snapshot, instance)
            await self._repo.add(snapshot, auto_commit=self.auto_commit)
            return

        self._fill(snapshot, instance)
        await self._repo.update(snapshot, auto_commit=self.auto_commit)

    async def load(self, instance_id: UUID) -> WorkflowInstance | None:
        snapshot = await self._repo.get_one_or_none(id=instance_id)
        if snapshot is None:
            return None
        return instance_from_dict(snapshot.document)

    async def update(self, instance_id: UUID, updates: WorkflowInstance | Mapping[str, Any]) -> None:
        """Merge ``updates`` into the stored snapshot.

        Args:
            instance_id: The workflow instance ID.
            updates: A replacement instance or a mapping of field names to values.

        Raises:
            StateMachineError: ``INSTANCE_NOT_FOUND`` if no snapshot is stored.
        """
        snapshot = await self._repo.get_one_or_none(id=instance_id)
        if snapshot is None:
            raise StateMachineError(
                "Workflow instance not found", ErrorCode.INSTANCE_NOT_FOUND, {"instance_id": str(instance_id)}
            )

        logger.debug("updating_snapshot", instance_id=str(instance_id))
        self._fill(snapshot, apply_updates(instance_from_dict(snapshot.document), updates))
        await self._repo.update(snapshot, auto_commit=self.auto_commit)

    async def list(
        self,
        state: MachineState | None = None,
        workflow_id: str | None = None,
    ) -> list[WorkflowInstance]:
        snapshots = await self._repo.find(state=state, workflow_id=workflow_id)
        return [instance_from_dict(snapshot.document) for snapshot in snapshots]

    @staticmethod
    def _fill(snapshot: WorkflowSnapshotModel, instance: WorkflowInstance) -> None:
        snapshot.workflow_id = instance.workflow_id
        snapshot.state = instance.state
        snapshot.current_phase_id = instance.current_phase_id
        snapshot.document = instance_to_dict(instance)
