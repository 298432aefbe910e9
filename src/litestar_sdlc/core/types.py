"""Core type definitions for litestar-sdlc.

This module defines the state enums of the three-level state machine
(workflow, phase, task) and the closed set of task types.
"""

from __future__ import annotations

import sys
from enum import Enum, auto
from typing import Any, TypeAlias

# StrEnum backport for Python < 3.11
if sys.version_info >= (3, 11):
    from enum import StrEnum
else:

    class StrEnum(str, Enum):
        """String enumeration compatibility for Python < 3.11."""

        @staticmethod
        def _generate_next_value_(name: str, start: int, count: int, last_values: list[Any]) -> str:
            return name.lower()

        def __str__(self) -> str:
            return str(self.value)


__all__ = [
    "Metadata",
    "MachineState",
    "PhaseState",
    "StrEnum",
    "TaskState",
    "TaskType",
]


class MachineState(StrEnum):
    """Overall state of a workflow instance.

    Attributes:
        IDLE: Instance exists but has not been started.
        RUNNING: Instance is executing (or waiting for an explicit transition).
        PAUSED: Execution is suspended until resumed.
        COMPLETED: The phase sequence was exhausted successfully.
        FAILED: Terminated by an unrecoverable failure or a cancellation.
    """

    IDLE = auto()
    RUNNING = auto()
    PAUSED = auto()
    COMPLETED = auto()
    FAILED = auto()

    @property
    def is_terminal(self) -> bool:
        return self in (MachineState.COMPLETED, MachineState.FAILED)


class PhaseState(StrEnum):
    """Execution state of one phase within a workflow instance.

    Attributes:
        PENDING: Phase has not been entered yet.
        ACTIVE: Phase tasks are being scheduled.
        COMPLETED: Every required task finished and the phase was validated.
        FAILED: The last execution attempt failed.
        SKIPPED: Phase was bypassed.
        ROLLED_BACK: Completed task state was reverted to pending.
    """

    PENDING = auto()
    ACTIVE = auto()
    COMPLETED = auto()
    FAILED = auto()
    SKIPPED = auto()
    ROLLED_BACK = auto()


class TaskState(StrEnum):
    """Execution state of a single task.

    Attributes:
        PENDING: Task has not started.
        RUNNING: Task was dispatched and has not settled.
        COMPLETED: Task returned a result.
        FAILED: Task raised.
        SKIPPED: Optional task failed and was tolerated.
    """

    PENDING = auto()
    RUNNING = auto()
    COMPLETED = auto()
    FAILED = auto()
    SKIPPED = auto()


class TaskType(StrEnum):
    """Closed set of task behaviours understood by the task executor.

    Attributes:
        AUTOMATED: Runs tools without human involvement.
        MANUAL: Performed by an assignee.
        REVIEW: A reviewer inspects prior work.
        APPROVAL: A decision gate that may reject.
    """

    AUTOMATED = auto()
    MANUAL = auto()
    REVIEW = auto()
    APPROVAL = auto()

    @classmethod
    def parse(cls, value: str | TaskType | None) -> TaskType | None:
        """Return the matching task type, or ``None`` for unknown values."""
        if isinstance(value, TaskType):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            return None


Metadata: TypeAlias = dict[str, Any]
"""Type alias for free-form run-time metadata (control flags, approvals, ...)."""
