"""In-memory persistence store."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import structlog

from litestar_sdlc.exceptions import ErrorCode, StateMachineError
from litestar_sdlc.persistence.serialization import apply_updates, instance_from_dict, instance_to_dict

if TYPE_CHECKING:
    from collections.abc import Mapping
    from uuid import UUID

    from litestar_sdlc.core.models import WorkflowInstance
    from litestar_sdlc.core.types import MachineState

__all__ = ["InMemoryPersistence"]

logger = structlog.get_logger(__name__)


class InMemoryPersistence:
    """Process-local snapshot store.

    Snapshots are kept as serialized documents, so callers can never mutate
    them through an instance they saved or loaded. Useful for tests and for
    single-process deployments that do not need durability.
    """

    def __init__(self) -> None:
        self._snapshots: dict[UUID, dict[str, Any]] = {}

    async def save(self, instance: WorkflowInstance) -> None:
        logger.debug("saving_snapshot", instance_id=str(instance.id))
        self._snapshots[instance.id] = instance_to_dict(instance)

    async def load(self, instance_id: UUID) -> WorkflowInstance | None:
        document = self._snapshots.get(instance_id)
        if document is None:
            return None
        return instance_from_dict(document)

    async def update(self, instance_id: UUID, updates: WorkflowInstance | Mapping[str, Any]) -> None:
        """Merge ``updates`` into the stored snapshot.

        Args:
            instance_id: The workflow instance ID.
            updates: A replacement instance or a mapping of field names to values.

        Raises:
            StateMachineError: ``INSTANCE_NOT_FOUND`` if no snapshot is stored.
        """
        document = self._snapshots.get(instance_id)
        if document is None:
            raise StateMachineError(
                "Workflow instance not found", ErrorCode.INSTANCE_NOT_FOUND, {"instance_id": str(instance_id)}
            )

        logger.debug("updating_snapshot", instance_id=str(instance_id))
        self._snapshots[instance_id] = instance_to_dict(apply_updates(instance_from_dict(document), updates))

    async def list(
        self,
        state: MachineState | None = None,
        workflow_id: str | None = None,
    ) -> list[WorkflowInstance]:
        return [
            instance_from_dict(document)
            for document in self._snapshots.values()
            if (state is None or document["state"] == str(state))
            and (workflow_id is None or document["workflow_id"] == workflow_id)
        ]

    async def delete(self, instance_id: UUID) -> bool:
        return self._snapshots.pop(instance_id, None) is not None

    def __len__(self) -> int:
        return len(self._snapshots)
