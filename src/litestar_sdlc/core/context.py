"""Execution contexts handed to the phase executor, task executor and transition validator."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from litestar_sdlc.core.definition import PhaseDefinition, TaskDefinition, TransitionDefinition
    from litestar_sdlc.core.models import PhaseInstance, TaskInstance, WorkflowInstance

__all__ = ["PhaseContext", "TaskContext", "TransitionContext"]


@dataclass
class PhaseContext:
    """Everything needed to execute one phase of a workflow instance.

    The instance objects are shared by reference with the state machine, so
    task and phase state written here is visible to the owner immediately.

    Attributes:
        workflow_instance: The owning workflow instance.
        phase: The phase definition being executed.
        phase_instance: The mutable phase record of ``workflow_instance``.
        metadata: Run-time flags, usually the instance metadata.
    """

    workflow_instance: WorkflowInstance
    phase: PhaseDefinition
    phase_instance: PhaseInstance
    metadata: dict[str, Any] = field(default_factory=dict)

    def for_task(self, task: TaskDefinition) -> TaskContext:
        """Create the context for executing ``task`` within this phase.

        Args:
            task: The task definition.

        Returns:
            A TaskContext bound to the task's record in ``phase_instance``.

        Raises:
            KeyError: If the task record has not been initialized.
        """
        return TaskContext(
            phase_context=self,
            task=task,
            task_instance=self.phase_instance.task_states[task.id],
            metadata=self.metadata,
        )


@dataclass
class TaskContext:
    """Everything needed to execute one task.

    Attributes:
        phase_context: The enclosing phase context.
        task: The task definition.
        task_instance: The mutable task record.
        metadata: Run-time flags consulted by the task executor.
    """

    phase_context: PhaseContext
    task: TaskDefinition
    task_instance: TaskInstance
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class TransitionContext:
    """Everything the transition validator needs to judge a phase change.

    Attributes:
        workflow_instance: The instance asking to move.
        from_phase: The current phase definition.
        to_phase: The target phase definition.
        transition: The definition edge being taken.
        reason: Optional free-form reason for the transition.
        metadata: Caller-provided flags such as ``approved``.
    """

    workflow_instance: WorkflowInstance
    from_phase: PhaseDefinition
    to_phase: PhaseDefinition
    transition: TransitionDefinition
    reason: str | None = None
    metadata: dict[str, Any] | None = None
