"""State machine configuration."""

from __future__ import annotations

from dataclasses import dataclass

__all__ = ["DEFAULT_STATE_MACHINE_CONFIG", "StateMachineConfig"]


@dataclass(frozen=True)
class StateMachineConfig:
    """Configuration for the :class:`~litestar_sdlc.engine.state_machine.StateMachine`.

    Attributes:
        enable_persistence: Write every mutation to the persistence store. When
            False the store is never touched.
        enable_retries: Retry a failed phase. When False the first failure is terminal.
        max_retries: Maximum number of retries per phase.
        retry_delay: Milliseconds waited before each retry. The delay is constant
            per attempt, not an exponential backoff.
        enable_rollback: Allow :meth:`StateMachine.rollback_phase`. The engine never
            rolls back on its own.
        default_timeout: Advisory task/phase timeout in milliseconds. Not enforced.
        enable_metrics: Advisory flag; no metrics sink ships with the engine.
    """

    enable_persistence: bool = True
    enable_retries: bool = True
    max_retries: int = 3
    retry_delay: int = 1000
    enable_rollback: bool = True
    default_timeout: int = 300_000
    enable_metrics: bool = True

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            msg = f"max_retries must be >= 0, got {self.max_retries}"
            raise ValueError(msg)
        if self.retry_delay < 0:
            msg = f"retry_delay must be >= 0, got {self.retry_delay}"
            raise ValueError(msg)

    @property
    def retry_delay_seconds(self) -> float:
        return self.retry_delay / 1000


DEFAULT_STATE_MACHINE_CONFIG = StateMachineConfig()
"""Configuration used when none is supplied."""
