"""Litestar SDLC - Multi-phase workflow orchestration for Litestar.

This package provides a hierarchical state machine (workflow, phase, task)
for orchestrating software-delivery style workflows inside Litestar
applications.

Key Features:
    - Dependency-aware task scheduling within each phase
    - Phase transitions gated by conditions and approvals
    - Phase retries and task-state rollback
    - Pluggable definition providers, notification sinks and persistence stores
    - Litestar plugin with a REST API

Example:
    >>> from litestar_sdlc import DefinitionRegistry, build_state_machine
    >>>
    >>> registry = DefinitionRegistry()
    >>> registry.register(
    ...     {
    ...         "id": "release",
    ...         "initialPhase": "build",
    ...         "phases": [{"id": "build", "tasks": [{"id": "compile", "type": "automated"}]}],
    ...     }
    ... )
    >>> state_machine = build_state_machine(registry)
    >>> instance = await state_machine.start_workflow("release")
"""

from __future__ import annotations

from litestar_sdlc.__metadata__ import __project__, __version__
from litestar_sdlc.config import DEFAULT_STATE_MACHINE_CONFIG, StateMachineConfig
from litestar_sdlc.core import (
    EventBus,
    MachineState,
    PhaseDefinition,
    PhaseInstance,
    PhaseState,
    TaskDefinition,
    TaskInstance,
    TaskState,
    TaskType,
    TransitionDefinition,
    WorkflowDefinition,
    WorkflowEventType,
    WorkflowInstance,
)
from litestar_sdlc.engine import (
    DefinitionRegistry,
    PhaseExecutor,
    StateMachine,
    TaskExecutor,
    TransitionValidator,
    build_state_machine,
)
from litestar_sdlc.exceptions import (
    ErrorCode,
    PhaseExecutionError,
    SDLCError,
    StateMachineError,
    TransitionError,
)
from litestar_sdlc.persistence import InMemoryPersistence
from litestar_sdlc.plugin import SDLCPlugin, SDLCPluginConfig

__all__ = (
    "DEFAULT_STATE_MACHINE_CONFIG",
    "DefinitionRegistry",
    "ErrorCode",
    "EventBus",
    "InMemoryPersistence",
    "MachineState",
    "PhaseDefinition",
    "PhaseExecutionError",
    "PhaseExecutor",
    "PhaseInstance",
    "PhaseState",
    "SDLCError",
    "SDLCPlugin",
    "SDLCPluginConfig",
    "StateMachine",
    "StateMachineConfig",
    "StateMachineError",
    "TaskDefinition",
    "TaskExecutor",
    "TaskInstance",
    "TaskState",
    "TaskType",
    "TransitionDefinition",
    "TransitionError",
    "TransitionValidator",
    "WorkflowDefinition",
    "WorkflowEventType",
    "WorkflowInstance",
    "__project__",
    "__version__",
    "build_state_machine",
)
