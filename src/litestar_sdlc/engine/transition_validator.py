"""Phase-to-phase transition validation and approval gating."""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from litestar_sdlc.core.events import WorkflowEventType
from litestar_sdlc.core.types import PhaseState
from litestar_sdlc.engine.base import notify
from litestar_sdlc.engine.conditions import KeywordConditionEvaluator

if TYPE_CHECKING:
    from litestar_sdlc.core.context import TransitionContext
    from litestar_sdlc.core.protocols import ConditionEvaluator, NotificationSink

__all__ = ["TransitionValidator"]

logger = structlog.get_logger(__name__)

_TRANSITIONABLE_STATES = (PhaseState.ACTIVE, PhaseState.COMPLETED)


class TransitionValidator:
    """Decides whether a workflow instance may move from one phase to another.

    A transition is allowed when the source phase is active or completed,
    every transition condition holds, and, for approval gated transitions,
    approval is granted. Approval is default-deny: only ``approved`` or
    ``autoApprove`` set to True in the transition metadata grants it.

    Attributes:
        event_bus: Optional notification sink.
        condition_evaluator: Strategy evaluating condition descriptions.
    """

    def __init__(
        self,
        event_bus: NotificationSink | None = None,
        condition_evaluator: ConditionEvaluator | None = None,
    ) -> None:
        """Initialize the validator.

        Args:
            event_bus: Optional notification sink receiving approval requests.
            condition_evaluator: Condition strategy; defaults to :class:`KeywordConditionEvaluator`.
        """
        self.event_bus = event_bus
        self.condition_evaluator = condition_evaluator or KeywordConditionEvaluator()

    async def can_transition(self, context: TransitionContext) -> bool:
        log = logger.bind(component="TransitionValidator", from_phase=context.from_phase.id, to_phase=context.to_phase.id)
        log.info("validating_transition")

        phase_instance = context.workflow_instance.phase_states.get(context.from_phase.id)
        if phase_instance is None:
            log.warning("source_phase_instance_not_found")
            return False

        if phase_instance.state not in _TRANSITIONABLE_STATES:
            log.warning("source_phase_not_transitionable", current_state=str(phase_instance.state))
            return False

        failed_conditions = await self.validate_transition_conditions(context)
        if failed_conditions:
            log.warning("transition_conditions_not_met", failed_conditions=failed_conditions)
            return False

        if context.transition.requires_approval:
            approved = await self.request_approval(context)
            if not approved:
                log.warning("transition_approval_denied")
            return approved

        log.info("transition_validated")
        return True

    async def validate_transition_conditions(self, context: TransitionContext) -> list[str]:
        """Evaluate every condition of the transition.

        Args:
            context: The transition context.

        Returns:
            Descriptions of the conditions that do not hold, in declaration order.
        """
        failed: list[str] = []
        for condition in context.transition.conditions:
            logger.debug("evaluating_condition", condition=condition)
            if not self.condition_evaluator.evaluate(condition, context):
                failed.append(condition)
        return failed

    async def request_approval(self, context: TransitionContext) -> bool:
        """Request approval for the transition.

        Emits ``transition.approval_requested`` and then decides from metadata.

        Args:
            context: The transition context.

        Returns:
            True if ``approved`` or ``autoApprove`` is True in the metadata.
        """
        approvers = list(context.transition.approvers)
        await notify(
            self.event_bus,
            WorkflowEventType.TRANSITION_APPROVAL_REQUESTED,
            **{"from": context.from_phase.id, "to": context.to_phase.id, "approvers": approvers},
        )
        logger.info(
            "requesting_transition_approval",
            from_phase=context.from_phase.id,
            to_phase=context.to_phase.id,
            approvers=approvers,
        )

        metadata = context.metadata or {}
        if metadata.get("approved") is True:
            logger.info("transition_approved_via_metadata")
            return True
        if metadata.get("autoApprove") is True:
            logger.info("transition_auto_approved")
            return True

        logger.warning("no_approval_available_denying")
        return False
