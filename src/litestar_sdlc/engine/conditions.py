"""Transition condition evaluation strategies."""

from __future__ import annotations

from typing import TYPE_CHECKING

from litestar_sdlc.core.types import PhaseState

if TYPE_CHECKING:
    from litestar_sdlc.core.context import TransitionContext

__all__ = ["KeywordConditionEvaluator"]


class KeywordConditionEvaluator:
    """Evaluates condition descriptions by the keywords they mention.

    - a condition mentioning ``completed`` holds only if the source phase is completed;
    - a condition mentioning ``approved`` holds only if ``metadata["approved"]`` is True.

    A condition mentioning both must satisfy both. Conditions mentioning
    neither keyword always hold.
    """

    def evaluate(self, condition: str, context: TransitionContext) -> bool:
        text = condition.lower()
        holds = True

        if "completed" in text:
            phase_instance = context.workflow_instance.phase_states.get(context.from_phase.id)
            holds = phase_instance is not None and phase_instance.state == PhaseState.COMPLETED

        if "approved" in text:
            metadata = context.metadata or {}
            holds = holds and metadata.get("approved") is True

        return holds
