"""Workflow, phase, task and transition definitions.

Definitions are the static, read-only description of a workflow. They are
supplied by a definition provider and never mutated by the engine.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from litestar_sdlc.core.types import TaskType

__all__ = ["PhaseDefinition", "TaskDefinition", "TransitionDefinition", "WorkflowDefinition"]


def _pick(data: Mapping[str, Any], *keys: str, default: Any = None) -> Any:
    """Return the first key present in ``data``; accepts camelCase and snake_case spellings."""
    for key in keys:
        if key in data:
            return data[key]
    return default


@dataclass(frozen=True)
class TaskDefinition:
    """A unit of work inside a phase.

    Attributes:
        id: Task id, unique within its phase.
        name: Human-readable name.
        type: Declared task type. Unknown strings are kept as-is and run as manual tasks.
        required: Whether a failure of this task fails the phase.
        dependencies: Ids of tasks in the same phase that must finish first.
        assignee: Person or role performing manual, review or approval work.
        estimated_duration: Duration string such as ``"2 days"`` or ``"30 seconds"``.
        tools: Tools an automated task uses.
        outputs: Artifacts the task produces.
    """

    id: str
    name: str = ""
    type: TaskType | str = TaskType.MANUAL
    required: bool = True
    dependencies: tuple[str, ...] = ()
    assignee: str | None = None
    estimated_duration: str | None = None
    tools: tuple[str, ...] = ()
    outputs: tuple[str, ...] = ()

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> TaskDefinition:
        task_type = _pick(data, "type", default=TaskType.MANUAL)
        return cls(
            id=data["id"],
            name=data.get("name", data["id"]),
            type=TaskType.parse(task_type) or task_type,
            required=bool(data.get("required", True)),
            dependencies=tuple(data.get("dependencies") or ()),
            assignee=data.get("assignee"),
            estimated_duration=_pick(data, "estimatedDuration", "estimated_duration"),
            tools=tuple(data.get("tools") or ()),
            outputs=tuple(data.get("outputs") or ()),
        )


@dataclass(frozen=True)
class PhaseDefinition:
    """A named stage of a workflow holding a task dependency graph.

    Attributes:
        id: Phase id, unique within the workflow.
        name: Human-readable name.
        tasks: Tasks of the phase, in declaration order.
        next_phases: Ids of the phases that may follow this one.
        entry_conditions: Descriptions of conditions to enter the phase.
        exit_conditions: Descriptions of conditions to leave the phase.
        objectives: Free-form objectives.
        deliverables: Artifacts expected when the phase completes.
        requires_approval: Whether leaving the phase is approval gated.
    """

    id: str
    name: str = ""
    tasks: tuple[TaskDefinition, ...] = ()
    next_phases: tuple[str, ...] = ()
    entry_conditions: tuple[str, ...] = ()
    exit_conditions: tuple[str, ...] = ()
    objectives: tuple[str, ...] = ()
    deliverables: tuple[str, ...] = ()
    requires_approval: bool = False

    def get_task(self, task_id: str) -> TaskDefinition | None:
        return next((task for task in self.tasks if task.id == task_id), None)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> PhaseDefinition:
        return cls(
            id=data["id"],
            name=data.get("name", data["id"]),
            tasks=tuple(
                task if isinstance(task, TaskDefinition) else TaskDefinition.from_dict(task)
                for task in data.get("tasks") or ()
            ),
            next_phases=tuple(_pick(data, "nextPhases", "next_phases", default=()) or ()),
            entry_conditions=tuple(_pick(data, "entryConditions", "entry_conditions", default=()) or ()),
            exit_conditions=tuple(_pick(data, "exitConditions", "exit_conditions", default=()) or ()),
            objectives=tuple(data.get("objectives") or ()),
            deliverables=tuple(data.get("deliverables") or ()),
            requires_approval=bool(_pick(data, "requiresApproval", "requires_approval", default=False)),
        )


@dataclass(frozen=True)
class TransitionDefinition:
    """A directed edge between two phases.

    Attributes:
        from_phase: Source phase id.
        to_phase: Target phase id.
        conditions: Condition descriptions evaluated by the transition validator.
        requires_approval: Whether an approval signal is needed to take the edge.
        approvers: People or roles asked for approval.
    """

    from_phase: str
    to_phase: str
    conditions: tuple[str, ...] = ()
    requires_approval: bool = False
    approvers: tuple[str, ...] = ()

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> TransitionDefinition:
        return cls(
            from_phase=_pick(data, "from", "from_phase"),
            to_phase=_pick(data, "to", "to_phase"),
            conditions=tuple(data.get("conditions") or ()),
            requires_approval=bool(_pick(data, "requiresApproval", "requires_approval", default=False)),
            approvers=tuple(data.get("approvers") or ()),
        )


@dataclass(frozen=True)
class WorkflowDefinition:
    """Declarative description of a multi-phase workflow.

    Attributes:
        id: Unique workflow id used to start instances.
        name: Human-readable name.
        initial_phase: Id of the phase executed first.
        phases: Ordered phases of the workflow.
        transitions: Legal phase-to-phase edges.
        version: Version string of the definition.
        description: Human-readable description.

    Example:
        >>> definition = WorkflowDefinition.from_dict(
        ...     {
        ...         "id": "release",
        ...         "initialPhase": "build",
        ...         "phases": [
        ...             {"id": "build", "tasks": [{"id": "compile", "type": "automated"}], "nextPhases": ["ship"]},
        ...             {"id": "ship", "tasks": [{"id": "deploy", "type": "automated"}]},
        ...         ],
        ...         "transitions": [{"from": "build", "to": "ship"}],
        ...     }
        ... )
        >>> definition.get_phase("ship").tasks[0].id
        'deploy'
    """

    id: str
    name: str
    initial_phase: str
    phases: tuple[PhaseDefinition, ...]
    transitions: tuple[TransitionDefinition, ...] = ()
    version: str = "1.0.0"
    description: str = ""
    _phase_index: dict[str, PhaseDefinition] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "_phase_index", {phase.id: phase for phase in self.phases})

    @property
    def phase_ids(self) -> list[str]:
        return [phase.id for phase in self.phases]

    def get_phase(self, phase_id: str) -> PhaseDefinition | None:
        return self._phase_index.get(phase_id)

    def get_available_transitions(self, phase_id: str) -> list[TransitionDefinition]:
        return [transition for transition in self.transitions if transition.from_phase == phase_id]

    def validate(self) -> list[str]:
        """Validate the definition for common structural issues.

        Returns:
            List of validation error messages. Empty list if valid.

        Example:
            >>> errors = definition.validate()
            >>> if errors:
            ...     print("Validation errors:", errors)
        """
        errors: list[str] = []

        if self.initial_phase not in self._phase_index:
            errors.append(f"Initial phase '{self.initial_phase}' not found in phases")

        if len(self._phase_index) != len(self.phases):
            errors.append("Phase ids must be unique")

        for phase in self.phases:
            for next_phase in phase.next_phases:
                if next_phase not in self._phase_index:
                    errors.append(f"Phase '{phase.id}': next phase '{next_phase}' not found")

            task_ids = [task.id for task in phase.tasks]
            if len(set(task_ids)) != len(task_ids):
                errors.append(f"Phase '{phase.id}': task ids must be unique")

            for task in phase.tasks:
                for dependency in task.dependencies:
                    if dependency not in task_ids:
                        errors.append(f"Phase '{phase.id}': task '{task.id}' depends on unknown task '{dependency}'")

        for i, transition in enumerate(self.transitions):
            if transition.from_phase not in self._phase_index:
                errors.append(f"Transition {i}: source phase '{transition.from_phase}' not found")
            if transition.to_phase not in self._phase_index:
                errors.append(f"Transition {i}: target phase '{transition.to_phase}' not found")

        return errors

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> WorkflowDefinition:
        """Build a definition from a plain mapping such as a parsed YAML document.

        Both camelCase (``initialPhase``, ``nextPhases``) and snake_case keys are accepted.

        Args:
            data: The mapping describing the workflow.

        Returns:
            The workflow definition.
        """
        return cls(
            id=data["id"],
            name=data.get("name", data["id"]),
            initial_phase=_pick(data, "initialPhase", "initial_phase"),
            phases=tuple(
                phase if isinstance(phase, PhaseDefinition) else PhaseDefinition.from_dict(phase)
                for phase in data.get("phases") or ()
            ),
            transitions=tuple(
                transition if isinstance(transition, TransitionDefinition) else TransitionDefinition.from_dict(transition)
                for transition in data.get("transitions") or ()
            ),
            version=str(data.get("version", "1.0.0")),
            description=data.get("description", ""),
        )
