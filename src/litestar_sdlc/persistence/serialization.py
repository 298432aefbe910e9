"""Serialization of workflow instances to JSON-compatible documents.

Every persistence store copies instances through this module, so a stored
snapshot never shares mutable state with the live instance. Nested maps are
written as ordered ``[{"key": ..., "value": ...}]`` pair lists, timestamps as
ISO-8601 strings, enums as their values and UUIDs as strings.
"""

from __future__ import annotations

import copy
from dataclasses import fields
from datetime import datetime
from typing import TYPE_CHECKING, Any
from uuid import UUID

from litestar_sdlc.core.models import PhaseInstance, TaskInstance, WorkflowInstance
from litestar_sdlc.core.types import MachineState, PhaseState, TaskState

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Mapping

__all__ = [
    "apply_updates",
    "clone_instance",
    "instance_from_dict",
    "instance_to_dict",
]

_INSTANCE_FIELDS = frozenset(f.name for f in fields(WorkflowInstance))


def _dump_datetime(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _load_datetime(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


def _dump_pairs(mapping: Mapping[str, Any], dump: Callable[[Any], Any]) -> list[dict[str, Any]]:
    return [{"key": key, "value": dump(value)} for key, value in mapping.items()]


def _load_pairs(pairs: Iterable[Mapping[str, Any]], load: Callable[[Any], Any]) -> dict[str, Any]:
    return {pair["key"]: load(pair["value"]) for pair in pairs}


def _task_to_dict(task: TaskInstance) -> dict[str, Any]:
    return {
        "task_id": task.task_id,
        "state": task.state.value,
        "started_at": _dump_datetime(task.started_at),
        "completed_at": _dump_datetime(task.completed_at),
        "result": copy.deepcopy(task.result),
        "error": task.error,
        "retry_count": task.retry_count,
    }


def _task_from_dict(data: Mapping[str, Any]) -> TaskInstance:
    return TaskInstance(
        task_id=data["task_id"],
        state=TaskState(data["state"]),
        started_at=_load_datetime(data.get("started_at")),
        completed_at=_load_datetime(data.get("completed_at")),
        result=copy.deepcopy(data.get("result")),
        error=data.get("error"),
        retry_count=data.get("retry_count", 0),
    )


def _phase_to_dict(phase: PhaseInstance) -> dict[str, Any]:
    return {
        "phase_id": phase.phase_id,
        "state": phase.state.value,
        "task_states": _dump_pairs(phase.task_states, _task_to_dict),
        "started_at": _dump_datetime(phase.started_at),
        "completed_at": _dump_datetime(phase.completed_at),
        "error": phase.error,
        "retry_count": phase.retry_count,
        "metadata": copy.deepcopy(phase.metadata),
    }


def _phase_from_dict(data: Mapping[str, Any]) -> PhaseInstance:
    return PhaseInstance(
        phase_id=data["phase_id"],
        state=PhaseState(data["state"]),
        task_states=_load_pairs(data.get("task_states", []), _task_from_dict),
        started_at=_load_datetime(data.get("started_at")),
        completed_at=_load_datetime(data.get("completed_at")),
        error=data.get("error"),
        retry_count=data.get("retry_count", 0),
        metadata=copy.deepcopy(data.get("metadata") or {}),
    )


def instance_to_dict(instance: WorkflowInstance) -> dict[str, Any]:
    """Serialize a workflow instance into a JSON-compatible document.

    Args:
        instance: The workflow instance.

    Returns:
        A document sharing no mutable state with ``instance``.
    """
    return {
        "id": str(instance.id),
        "workflow_id": instance.workflow_id,
        "name": instance.name,
        "state": instance.state.value,
        "current_phase_id": instance.current_phase_id,
        "phase_states": _dump_pairs(instance.phase_states, _phase_to_dict),
        "started_at": _dump_datetime(instance.started_at),
        "completed_at": _dump_datetime(instance.completed_at),
        "error": instance.error,
        "metadata": copy.deepcopy(instance.metadata),
    }


def instance_from_dict(data: Mapping[str, Any]) -> WorkflowInstance:
    """Rebuild a workflow instance from a document made by :func:`instance_to_dict`.

    Args:
        data: The serialized document.

    Returns:
        A new workflow instance.
    """
    return WorkflowInstance(
        id=UUID(str(data["id"])),
        workflow_id=data["workflow_id"],
        name=data["name"],
        state=MachineState(data["state"]),
        current_phase_id=data.get("current_phase_id"),
        phase_states=_load_pairs(data.get("phase_states", []), _phase_from_dict),
        started_at=_load_datetime(data["started_at"]),  # type: ignore[arg-type]
        completed_at=_load_datetime(data.get("completed_at")),
        error=data.get("error"),
        metadata=copy.deepcopy(data.get("metadata") or {}),
    )


def clone_instance(instance: WorkflowInstance) -> WorkflowInstance:
    return instance_from_dict(instance_to_dict(instance))


def apply_updates(
    instance: WorkflowInstance,
    updates: WorkflowInstance | Mapping[str, Any],
) -> WorkflowInstance:
    """Merge ``updates`` into a stored instance.

    A full :class:`WorkflowInstance` replaces the stored one; a mapping sets
    the named fields only.

    Args:
        instance: The instance rebuilt from the store. It is mutated in place.
        updates: A replacement instance or a mapping of field names to values.

    Returns:
        The updated instance.

    Raises:
        ValueError: If the mapping names a field workflow instances do not have.
    """
    if isinstance(updates, WorkflowInstance):
        return clone_instance(updates)

    unknown = sorted(set(updates) - _INSTANCE_FIELDS)
    if unknown:
        msg = f"Unknown workflow instance fields: {', '.join(unknown)}"
        raise ValueError(msg)

    for name, value in updates.items():
        setattr(instance, name, copy.deepcopy(value))
    return instance
