"""Exception hierarchy for litestar-sdlc."""

from __future__ import annotations

from typing import Any

from litestar_sdlc.core.types import StrEnum

__all__ = (
    "ErrorCode",
    "PhaseExecutionError",
    "SDLCError",
    "StateMachineError",
    "TransitionError",
)


class ErrorCode(StrEnum):
    """Machine-readable codes carried by :class:`StateMachineError`."""

    WORKFLOW_NOT_FOUND = "WORKFLOW_NOT_FOUND"
    INSTANCE_NOT_FOUND = "INSTANCE_NOT_FOUND"
    INVALID_STATE = "INVALID_STATE"
    NO_CURRENT_PHASE = "NO_CURRENT_PHASE"
    PHASE_NOT_FOUND = "PHASE_NOT_FOUND"
    PHASE_INSTANCE_NOT_FOUND = "PHASE_INSTANCE_NOT_FOUND"
    PHASE_EXECUTION_ERROR = "PHASE_EXECUTION_ERROR"
    TRANSITION_ERROR = "TRANSITION_ERROR"


class SDLCError(Exception):
    """Base exception for all litestar-sdlc errors.

    All exceptions raised by litestar-sdlc inherit from this class, so callers
    can catch every orchestration error with a single except clause.
    """


class StateMachineError(SDLCError):
    """Raised when a state machine operation cannot be carried out.

    Attributes:
        code: Machine-readable error code.
        context: Free-form details about the failure (ids, current state, ...).
    """

    def __init__(self, message: str, code: ErrorCode | str, context: dict[str, Any] | None = None) -> None:
        """Initialize the exception.

        Args:
            message: Human-readable description of the failure.
            code: Machine-readable error code.
            context: Optional structured details about the failure.
        """
        self.message = message
        self.code = code
        self.context = context or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-friendly representation of the error."""
        return {"message": self.message, "code": str(self.code), "context": self.context}


class PhaseExecutionError(StateMachineError):
    """Raised when a phase cannot run to completion.

    Attributes:
        phase_id: The phase that failed.
        failed_tasks: Ids of required tasks that failed.
        pending_tasks: Ids of tasks that could never be scheduled.
    """

    def __init__(self, message: str, phase_id: str, context: dict[str, Any] | None = None) -> None:
        """Initialize the exception with phase details.

        Args:
            message: Human-readable description of the failure.
            phase_id: The phase that failed.
            context: Optional details, typically ``failed_tasks`` and ``pending_tasks``.
        """
        self.phase_id = phase_id
        super().__init__(message, ErrorCode.PHASE_EXECUTION_ERROR, context)

    @property
    def failed_tasks(self) -> list[str]:
        return list(self.context.get("failed_tasks", []))

    @property
    def pending_tasks(self) -> list[str]:
        return list(self.context.get("pending_tasks", []))


class TransitionError(StateMachineError):
    """Raised when a workflow instance may not move between two phases.

    Attributes:
        from_phase_id: The phase being transitioned from.
        to_phase_id: The phase being transitioned to.
    """

    def __init__(
        self,
        message: str,
        from_phase_id: str,
        to_phase_id: str,
        context: dict[str, Any] | None = None,
    ) -> None:
        """Initialize the exception with transition details.

        Args:
            message: Human-readable description of the failure.
            from_phase_id: The phase being transitioned from.
            to_phase_id: The phase being transitioned to.
            context: Optional details about the refused transition.
        """
        self.from_phase_id = from_phase_id
        self.to_phase_id = to_phase_id
        super().__init__(message, ErrorCode.TRANSITION_ERROR, context)
