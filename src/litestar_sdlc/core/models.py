"""Runtime data models for litestar-sdlc.

These dataclasses hold the mutable state of workflow instances. The state
machine owns :class:`WorkflowInstance` objects; the phase and task executors
mutate the :class:`PhaseInstance` and :class:`TaskInstance` objects they are
handed by reference.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any
from uuid import UUID

from litestar_sdlc.core.types import MachineState, PhaseState, TaskState

__all__ = ["PhaseInstance", "TaskInstance", "WorkflowInstance", "utcnow"]


def utcnow() -> datetime:
    """Return the current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


@dataclass
class TaskInstance:
    """Execution record of a single task.

    Attributes:
        task_id: Id of the task definition.
        state: Current task state.
        started_at: When the task was last dispatched.
        completed_at: When the task last settled.
        result: Opaque payload returned by the task executor.
        error: Error message if the task failed.
        retry_count: Number of task-level retries (phase retries do not touch it).
    """

    task_id: str
    state: TaskState = TaskState.PENDING
    started_at: datetime | None = None
    completed_at: datetime | None = None
    result: Any = None
    error: str | None = None
    retry_count: int = 0


@dataclass
class PhaseInstance:
    """Execution record of a phase within a workflow instance.

    Attributes:
        phase_id: Id of the phase definition.
        state: Current phase state.
        task_states: Task records keyed by task id, created on first execution attempt.
        started_at: When the phase was last activated.
        completed_at: When the phase last settled.
        error: Error message of the last failed attempt.
        retry_count: Number of phase retries performed so far.
        metadata: Free-form phase metadata.
    """

    phase_id: str
    state: PhaseState = PhaseState.PENDING
    task_states: dict[str, TaskInstance] = field(default_factory=dict)
    started_at: datetime | None = None
    completed_at: datetime | None = None
    error: str | None = None
    retry_count: int = 0
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class WorkflowInstance:
    """One execution of a workflow definition.

    Attributes:
        id: Unique identifier for this instance.
        workflow_id: Id of the workflow definition.
        name: Name of the workflow definition.
        state: Current machine state.
        current_phase_id: Phase being executed, ``None`` only before start.
        phase_states: One record per defined phase, fixed at creation.
        started_at: Timestamp when the instance was created.
        completed_at: Timestamp when the instance reached a terminal state.
        error: Terminal error message, if any.
        metadata: Run-time control flags (``autoApprove``, ``completedTasks``, ...).
    """

    id: UUID
    workflow_id: str
    name: str
    state: MachineState
    current_phase_id: str | None
    phase_states: dict[str, PhaseInstance]
    started_at: datetime
    completed_at: datetime | None = None
    error: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def current_phase(self) -> PhaseInstance | None:
        if self.current_phase_id is None:
            return None
        return self.phase_states.get(self.current_phase_id)

    def phases_in_state(self, state: PhaseState) -> list[str]:
        """Return the ids of phases currently in ``state``, in definition order."""
        return [phase_id for phase_id, phase in self.phase_states.items() if phase.state == state]
