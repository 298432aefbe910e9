"""Orchestration engine for litestar-sdlc.

This module provides the state machine and the executors it drives:

- StateMachine: owns workflow instances, drives phases and transitions
- PhaseExecutor: runs a phase's task graph frontier by frontier
- TaskExecutor: performs single tasks according to their type
- TransitionValidator: gates phase changes on conditions and approval
- DefinitionRegistry: in-memory provider of workflow definitions
"""

from __future__ import annotations

from litestar_sdlc.engine.conditions import KeywordConditionEvaluator
from litestar_sdlc.engine.phase_executor import PhaseExecutor
from litestar_sdlc.engine.registry import DefinitionRegistry
from litestar_sdlc.engine.state_machine import StateMachine, build_state_machine
from litestar_sdlc.engine.task_executor import TaskExecutor, simulated_delay
from litestar_sdlc.engine.transition_validator import TransitionValidator

__all__ = [
    "DefinitionRegistry",
    "KeywordConditionEvaluator",
    "PhaseExecutor",
    "StateMachine",
    "TaskExecutor",
    "TransitionValidator",
    "build_state_machine",
    "simulated_delay",
]
