"""Data Transfer Objects for the SDLC web API.

This module defines DTOs for serializing and deserializing workflow data
in REST API requests and responses.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any
from uuid import UUID

if TYPE_CHECKING:
    from litestar_sdlc.core.definition import WorkflowDefinition
    from litestar_sdlc.core.models import PhaseInstance, WorkflowInstance

__all__ = [
    "CancelWorkflowDTO",
    "PhaseInstanceDTO",
    "StartWorkflowDTO",
    "TaskInstanceDTO",
    "TransitionDTO",
    "WorkflowDefinitionDTO",
    "WorkflowInstanceDTO",
    "WorkflowInstanceDetailDTO",
]


@dataclass
class StartWorkflowDTO:
    """DTO for starting a new workflow instance.

    Attributes:
        workflow_id: Id of the workflow definition to instantiate.
        initial_data: Run-time metadata such as ``autoApprove`` or ``completedTasks``.
    """

    workflow_id: str
    initial_data: dict[str, Any] | None = None


@dataclass
class TransitionDTO:
    """DTO for an explicit phase transition.

    Attributes:
        target_phase_id: The phase to move to.
        context: Transition metadata such as ``{"approved": true}``.
    """

    target_phase_id: str
    context: dict[str, Any] | None = None


@dataclass
class CancelWorkflowDTO:
    reason: str | None = None


@dataclass
class WorkflowDefinitionDTO:
    """DTO for workflow definition metadata.

    Attributes:
        id: Workflow id.
        name: Workflow name.
        version: Workflow version.
        description: Human-readable description.
        initial_phase: Id of the starting phase.
        phases: Phases with their tasks and next phases.
        transitions: Phase transitions (from, to, conditions, approval).
    """

    id: str
    name: str
    version: str
    description: str
    initial_phase: str
    phases: list[dict[str, Any]]
    transitions: list[dict[str, Any]]

    @classmethod
    def from_definition(cls, definition: WorkflowDefinition) -> WorkflowDefinitionDTO:
        return cls(
            id=definition.id,
            name=definition.name,
            version=definition.version,
            description=definition.description,
            initial_phase=definition.initial_phase,
            phases=[
                {
                    "id": phase.id,
                    "name": phase.name,
                    "tasks": [
                        {
                            "id": task.id,
                            "name": task.name,
                            "type": str(task.type),
                            "required": task.required,
                            "dependencies": list(task.dependencies),
                        }
                        for task in phase.tasks
                    ],
                    "next_phases": list(phase.next_phases),
                    "requires_approval": phase.requires_approval,
                }
                for phase in definition.phases
            ],
            transitions=[
                {
                    "from": transition.from_phase,
                    "to": transition.to_phase,
                    "conditions": list(transition.conditions),
                    "requires_approval": transition.requires_approval,
                    "approvers": list(transition.approvers),
                }
                for transition in definition.transitions
            ],
        )


@dataclass
class TaskInstanceDTO:
    """DTO for a task execution record.

    Attributes:
        task_id: Id of the task definition.
        state: Task state (pending, running, completed, ...).
        started_at: When the task was last dispatched.
        completed_at: When the task last settled.
        result: Result payload of the task executor.
        error: Error message if the task failed.
    """

    task_id: str
    state: str
    started_at: datetime | None = None
    completed_at: datetime | None = None
    result: Any = None
    error: str | None = None


@dataclass
class PhaseInstanceDTO:
    """DTO for a phase execution record.

    Attributes:
        phase_id: Id of the phase definition.
        state: Phase state (pending, active, completed, ...).
        retry_count: Number of retries performed.
        started_at: When the phase was last activated.
        completed_at: When the phase last settled.
        error: Error message of the last failed attempt.
        tasks: Task records of the phase.
    """

    phase_id: str
    state: str
    retry_count: int
    started_at: datetime | None = None
    completed_at: datetime | None = None
    error: str | None = None
    tasks: list[TaskInstanceDTO] = field(default_factory=list)

    @classmethod
    def from_phase_instance(cls, phase: PhaseInstance) -> PhaseInstanceDTO:
        return cls(
            phase_id=phase.phase_id,
            state=str(phase.state),
            retry_count=phase.retry_count,
            started_at=phase.started_at,
            completed_at=phase.completed_at,
            error=phase.error,
            tasks=[
                TaskInstanceDTO(
                    task_id=task.task_id,
                    state=str(task.state),
                    started_at=task.started_at,
                    completed_at=task.completed_at,
                    result=task.result,
                    error=task.error,
                )
                for task in phase.task_states.values()
            ],
        )


@dataclass
class WorkflowInstanceDTO:
    """DTO for workflow instance summary.

    Attributes:
        id: Instance ID.
        workflow_id: Id of the workflow definition.
        name: Name of the workflow definition.
        state: Machine state.
        current_phase_id: Phase being executed.
        started_at: When the workflow started.
        completed_at: When the workflow reached a terminal state.
        error: Terminal error message.
    """

    id: UUID
    workflow_id: str
    name: str
    state: str
    current_phase_id: str | None
    started_at: datetime
    completed_at: datetime | None = None
    error: str | None = None

    @classmethod
    def from_instance(cls, instance: WorkflowInstance) -> WorkflowInstanceDTO:
        return cls(
            id=instance.id,
            workflow_id=instance.workflow_id,
            name=instance.name,
            state=str(instance.state),
            current_phase_id=instance.current_phase_id,
            started_at=instance.started_at,
            completed_at=instance.completed_at,
            error=instance.error,
        )


@dataclass
class WorkflowInstanceDetailDTO:
    """DTO for detailed workflow instance information.

    Extends WorkflowInstanceDTO with the phase records and metadata.
    """

    id: UUID
    workflow_id: str
    name: str
    state: str
    current_phase_id: str | None
    started_at: datetime
    completed_at: datetime | None
    error: str | None
    metadata: dict[str, Any]
    phases: list[PhaseInstanceDTO]

    @classmethod
    def from_instance(cls, instance: WorkflowInstance) -> WorkflowInstanceDetailDTO:
        return cls(
            id=instance.id,
            workflow_id=instance.workflow_id,
            name=instance.name,
            state=str(instance.state),
            current_phase_id=instance.current_phase_id,
            started_at=instance.started_at,
            completed_at=instance.completed_at,
            error=instance.error,
            metadata=dict(instance.metadata),
            phases=[PhaseInstanceDTO.from_phase_instance(phase) for phase in instance.phase_states.values()],
        )
