"""Core protocols for litestar-sdlc.

This module defines the Protocol-based interfaces between the state machine
and its collaborators. Using Protocol allows any object with the right shape
to be plugged in (a YAML-backed definition provider, a message-broker sink,
a database store) while keeping type safety.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Mapping
    from uuid import UUID

    from litestar_sdlc.core.context import PhaseContext, TaskContext, TransitionContext
    from litestar_sdlc.core.definition import PhaseDefinition, TransitionDefinition, WorkflowDefinition
    from litestar_sdlc.core.models import WorkflowInstance
    from litestar_sdlc.core.types import MachineState


__all__ = [
    "ConditionEvaluator",
    "DefinitionProvider",
    "NotificationSink",
    "PhaseRunner",
    "TaskRunner",
    "TransitionGate",
    "WorkflowPersistence",
]


@runtime_checkable
class DefinitionProvider(Protocol):
    """Read-only, authoritative source of workflow definitions."""

    def get_workflow(self, workflow_id: str) -> WorkflowDefinition | None:
        """Return the workflow definition, or ``None`` if unknown."""
        ...

    def get_phase(self, workflow_id: str, phase_id: str) -> PhaseDefinition | None:
        """Return a phase of a workflow, or ``None`` if either is unknown."""
        ...

    def get_available_transitions(self, workflow_id: str, phase_id: str) -> list[TransitionDefinition]:
        """Return the transitions leaving ``phase_id``."""
        ...


@runtime_checkable
class NotificationSink(Protocol):
    """Fire-and-forget publisher of named engine events."""

    async def emit(self, event_type: str, **payload: Any) -> None:
        """Publish ``event_type`` with a structured payload."""
        ...


@runtime_checkable
class TaskRunner(Protocol):
    """Performs a single task and checks the shape of its result."""

    async def execute_task(self, context: TaskContext) -> Any:
        """Execute the task and return its result.

        Raises:
            Exception: Any exception marks the task failed.
        """
        ...

    async def validate_task_result(self, context: TaskContext) -> bool:
        """Return whether the task's recorded result is well formed."""
        ...


@runtime_checkable
class PhaseRunner(Protocol):
    """Runs a phase's task graph and supports rollback."""

    async def execute_phase(self, context: PhaseContext) -> None:
        """Run every task of the phase.

        Raises:
            PhaseExecutionError: If the phase cannot complete.
        """
        ...

    async def validate_phase_completion(self, context: PhaseContext) -> bool:
        """Return whether every required task completed."""
        ...

    async def rollback_phase(self, context: PhaseContext) -> None:
        """Revert completed task state of the phase to pending."""
        ...


@runtime_checkable
class TransitionGate(Protocol):
    """Decides whether a workflow instance may move between phases."""

    async def can_transition(self, context: TransitionContext) -> bool:
        """Return whether the transition is allowed."""
        ...

    async def validate_transition_conditions(self, context: TransitionContext) -> list[str]:
        """Return the descriptions of the conditions that are not met."""
        ...

    async def request_approval(self, context: TransitionContext) -> bool:
        """Ask for approval of the transition and return the decision."""
        ...


@runtime_checkable
class ConditionEvaluator(Protocol):
    """Evaluates one transition condition description."""

    def evaluate(self, condition: str, context: TransitionContext) -> bool:
        """Return whether ``condition`` holds for the transition."""
        ...


@runtime_checkable
class WorkflowPersistence(Protocol):
    """Store of workflow instance snapshots.

    Every instance passed in or handed out must be an independent copy: the
    store never shares mutable state with its callers.
    """

    async def save(self, instance: WorkflowInstance) -> None:
        """Store a snapshot of ``instance``, replacing any previous one."""
        ...

    async def load(self, instance_id: UUID) -> WorkflowInstance | None:
        """Return a copy of the stored snapshot, or ``None``."""
        ...

    async def update(self, instance_id: UUID, updates: WorkflowInstance | Mapping[str, Any]) -> None:
        """Merge ``updates`` into the stored snapshot.

        Raises:
            StateMachineError: With code ``INSTANCE_NOT_FOUND`` if nothing is stored under ``instance_id``.
        """
        ...

    async def list(
        self,
        state: MachineState | None = None,
        workflow_id: str | None = None,
    ) -> list[WorkflowInstance]:
        """Return copies of the stored snapshots matching the filter."""
        ...
