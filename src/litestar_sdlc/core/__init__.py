"""Core domain module for litestar-sdlc.

This module exports the fundamental building blocks of the engine: state
enums, definitions, runtime models, execution contexts, protocols and events.
"""

from __future__ import annotations

from litestar_sdlc.core.context import PhaseContext, TaskContext, TransitionContext
from litestar_sdlc.core.definition import (
    PhaseDefinition,
    TaskDefinition,
    TransitionDefinition,
    WorkflowDefinition,
)
from litestar_sdlc.core.events import EventBus, WorkflowEventType
from litestar_sdlc.core.models import PhaseInstance, TaskInstance, WorkflowInstance
from litestar_sdlc.core.protocols import (
    ConditionEvaluator,
    DefinitionProvider,
    NotificationSink,
    PhaseRunner,
    TaskRunner,
    TransitionGate,
    WorkflowPersistence,
)
from litestar_sdlc.core.types import MachineState, Metadata, PhaseState, TaskState, TaskType

__all__ = [
    "ConditionEvaluator",
    "DefinitionProvider",
    "EventBus",
    "MachineState",
    "Metadata",
    "NotificationSink",
    "PhaseContext",
    "PhaseDefinition",
    "PhaseInstance",
    "PhaseRunner",
    "PhaseState",
    "TaskContext",
    "TaskDefinition",
    "TaskInstance",
    "TaskRunner",
    "TaskState",
    "TaskType",
    "TransitionContext",
    "TransitionDefinition",
    "TransitionGate",
    "WorkflowDefinition",
    "WorkflowEventType",
    "WorkflowInstance",
    "WorkflowPersistence",
]
