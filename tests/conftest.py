"""Shared test fixtures for litestar-sdlc test suite."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any
from uuid import uuid4

import pytest

from litestar_sdlc.config import StateMachineConfig
from litestar_sdlc.core.events import EventBus
from litestar_sdlc.engine.task_executor import TaskExecutor

if TYPE_CHECKING:
    from collections.abc import Iterable

    from litestar_sdlc.core.context import PhaseContext, TaskContext
    from litestar_sdlc.core.definition import PhaseDefinition
    from litestar_sdlc.engine.registry import DefinitionRegistry
    from litestar_sdlc.engine.state_machine import StateMachine
    from litestar_sdlc.persistence.memory import InMemoryPersistence


DELIVERY_WORKFLOW: dict[str, Any] = {
    "id": "delivery",
    "name": "Delivery Workflow",
    "version": "1.0.0",
    "initialPhase": "design",
    "phases": [
        {
            "id": "design",
            "name": "Design Phase",
            "objectives": ["Create design documents"],
            "deliverables": ["Design specification"],
            "entryConditions": ["Requirements approved"],
            "exitConditions": ["Design reviewed and approved"],
            "tasks": [
                {
                    "id": "create-design",
                    "name": "Create Design Document",
                    "type": "manual",
                    "required": True,
                    "estimatedDuration": "2 days",
                },
                {
                    "id": "review-design",
                    "name": "Review Design",
                    "type": "review",
                    "required": True,
                    "dependencies": ["create-design"],
                },
            ],
            "nextPhases": ["implementation"],
            "requiresApproval": True,
        },
        {
            "id": "implementation",
            "name": "Implementation Phase",
            "tasks": [
                {"id": "write-code", "name": "Write Code", "type": "manual", "estimatedDuration": "5 days"},
                {"id": "write-tests", "name": "Write Tests", "type": "manual", "dependencies": ["write-code"]},
                {"id": "run-tests", "name": "Run Tests", "type": "automated", "dependencies": ["write-tests"]},
            ],
            "nextPhases": ["deployment"],
        },
        {
            "id": "deployment",
            "name": "Deployment Phase",
            "tasks": [
                {
                    "id": "deploy-app",
                    "name": "Deploy Application",
                    "type": "automated",
                    "estimatedDuration": "1 hour",
                    "tools": ["kubectl"],
                    "outputs": ["release-notes"],
                },
            ],
            "nextPhases": [],
        },
    ],
    "transitions": [
        {
            "from": "design",
            "to": "implementation",
            "conditions": ["Design approved"],
            "requiresApproval": True,
            "approvers": ["Technical Lead"],
        },
        {"from": "implementation", "to": "deployment", "conditions": ["All tests passing"]},
    ],
}

CHAIN_WORKFLOW: dict[str, Any] = {
    "id": "chain",
    "name": "Chain Workflow",
    "initialPhase": "plan",
    "phases": [
        {"id": "plan", "tasks": [{"id": "outline", "type": "automated"}], "nextPhases": ["build"]},
        {
            "id": "build",
            "tasks": [
                {"id": "compile", "type": "automated"},
                {"id": "lint", "type": "automated", "required": False},
                {"id": "package", "type": "automated", "dependencies": ["compile", "lint"]},
            ],
            "nextPhases": ["release"],
        },
        {"id": "release", "tasks": [{"id": "publish", "type": "automated"}]},
    ],
    "transitions": [
        {"from": "plan", "to": "build", "conditions": ["Plan completed"]},
        {"from": "build", "to": "release"},
    ],
}

BRANCHING_WORKFLOW: dict[str, Any] = {
    "id": "branching",
    "name": "Branching Workflow",
    "initialPhase": "triage",
    "phases": [
        {"id": "triage", "tasks": [{"id": "classify", "type": "automated"}], "nextPhases": ["hotfix", "feature"]},
        {"id": "hotfix", "tasks": [{"id": "patch", "type": "automated"}]},
        {"id": "feature", "tasks": [{"id": "implement", "type": "automated"}]},
    ],
    "transitions": [
        {"from": "triage", "to": "hotfix"},
        {"from": "triage", "to": "feature"},
    ],
}


class RecordingEventBus(EventBus):
    """EventBus remembering every emitted event."""

    def __init__(self) -> None:
        super().__init__()
        self.events: list[tuple[str, dict[str, Any]]] = []
        self.on(self.WILDCARD, self._record)

    def _record(self, event_type: str, payload: dict[str, Any]) -> None:
        self.events.append((event_type, payload))

    @property
    def names(self) -> list[str]:
        return [event_type for event_type, _ in self.events]

    def payloads(self, event_type: str) -> list[dict[str, Any]]:
        return [payload for name, payload in self.events if name == str(event_type)]


class ScriptedTaskExecutor(TaskExecutor):
    """TaskExecutor recording call order and failing the configured tasks."""

    def __init__(self, event_bus: EventBus | None = None, *, failing: Iterable[str] = ()) -> None:
        super().__init__(event_bus, time_scale=0)
        self.failing = set(failing)
        self.calls: list[str] = []

    async def execute_task(self, context: TaskContext) -> dict[str, Any]:
        self.calls.append(context.task.id)
        if context.task.id in self.failing:
            msg = f"Task {context.task.id} failed"
            raise RuntimeError(msg)
        return await super().execute_task(context)


class GatedTaskExecutor(ScriptedTaskExecutor):
    """ScriptedTaskExecutor that blocks every task until ``release`` is set."""

    def __init__(self, event_bus: EventBus | None = None) -> None:
        super().__init__(event_bus)
        self.started = asyncio.Event()
        self.release = asyncio.Event()

    async def execute_task(self, context: TaskContext) -> dict[str, Any]:
        self.started.set()
        await self.release.wait()
        return await super().execute_task(context)


def make_phase_context(phase: PhaseDefinition, metadata: dict[str, Any] | None = None) -> PhaseContext:
    """Create a PhaseContext for ``phase`` inside a fresh single-phase instance.

    Args:
        phase: The phase definition.
        metadata: Run-time metadata of the instance.

    Returns:
        PhaseContext sharing its records with the instance.
    """
    from litestar_sdlc.core.context import PhaseContext
    from litestar_sdlc.core.models import PhaseInstance, WorkflowInstance, utcnow
    from litestar_sdlc.core.types import MachineState, PhaseState

    phase_instance = PhaseInstance(phase_id=phase.id, state=PhaseState.ACTIVE, started_at=utcnow())
    instance = WorkflowInstance(
        id=uuid4(),
        workflow_id="adhoc",
        name="Ad-hoc",
        state=MachineState.RUNNING,
        current_phase_id=phase.id,
        phase_states={phase.id: phase_instance},
        started_at=utcnow(),
        metadata=metadata or {},
    )
    return PhaseContext(
        workflow_instance=instance,
        phase=phase,
        phase_instance=phase_instance,
        metadata=instance.metadata,
    )


@pytest.fixture
def event_bus() -> RecordingEventBus:
    """Create an event bus recording every event."""
    return RecordingEventBus()


@pytest.fixture
def registry() -> DefinitionRegistry:
    """Create a registry holding the delivery, chain and branching workflows.

    Returns:
        DefinitionRegistry instance
    """
    from litestar_sdlc.engine.registry import DefinitionRegistry

    return DefinitionRegistry([DELIVERY_WORKFLOW, CHAIN_WORKFLOW, BRANCHING_WORKFLOW])


@pytest.fixture
def persistence() -> InMemoryPersistence:
    """Create an in-memory persistence store."""
    from litestar_sdlc.persistence.memory import InMemoryPersistence

    return InMemoryPersistence()


@pytest.fixture
def config() -> StateMachineConfig:
    """State machine configuration without retry delays."""
    return StateMachineConfig(retry_delay=0, max_retries=2)


@pytest.fixture
def task_executor(event_bus: RecordingEventBus) -> ScriptedTaskExecutor:
    """Create a task executor that never sleeps and records call order."""
    return ScriptedTaskExecutor(event_bus)


def make_state_machine(
    registry: DefinitionRegistry,
    task_executor: TaskExecutor,
    *,
    event_bus: EventBus | None = None,
    persistence: Any = None,
    config: StateMachineConfig | None = None,
) -> StateMachine:
    """Wire a StateMachine around ``task_executor``."""
    from litestar_sdlc.engine.phase_executor import PhaseExecutor
    from litestar_sdlc.engine.state_machine import StateMachine
    from litestar_sdlc.engine.transition_validator import TransitionValidator

    return StateMachine(
        definitions=registry,
        transition_validator=TransitionValidator(event_bus),
        phase_executor=PhaseExecutor(task_executor, event_bus),
        persistence=persistence,
        event_bus=event_bus,
        config=config,
    )


@pytest.fixture
def state_machine(
    registry: DefinitionRegistry,
    task_executor: ScriptedTaskExecutor,
    event_bus: RecordingEventBus,
    persistence: InMemoryPersistence,
    config: StateMachineConfig,
) -> StateMachine:
    """Create a state machine over the shared registry, store and event bus.

    Returns:
        StateMachine instance
    """
    return make_state_machine(
        registry,
        task_executor,
        event_bus=event_bus,
        persistence=persistence,
        config=config,
    )
