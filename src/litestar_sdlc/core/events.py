"""Engine events and an in-process event bus.

This module names the events emitted during workflow execution and provides
:class:`EventBus`, a minimal pub/sub notification sink. Events can be used for
logging, monitoring, triggering side effects, or integrating with external
systems.
"""

from __future__ import annotations

import inspect
from collections import defaultdict
from typing import TYPE_CHECKING, Any

import structlog

from litestar_sdlc.core.types import StrEnum

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    EventHandler = Callable[[str, dict[str, Any]], Awaitable[None] | None]

__all__ = ["EventBus", "WorkflowEventType"]

logger = structlog.get_logger(__name__)


class WorkflowEventType(StrEnum):
    """Names of the events emitted by the engine components.

    Payload keys are listed next to each event.
    """

    WORKFLOW_STARTED = "workflow.started"  # instance_id, workflow_id
    WORKFLOW_COMPLETED = "workflow.completed"  # instance_id
    WORKFLOW_FAILED = "workflow.failed"  # instance_id, error
    WORKFLOW_PAUSED = "workflow.paused"  # instance_id
    WORKFLOW_RESUMED = "workflow.resumed"  # instance_id
    WORKFLOW_CANCELLED = "workflow.cancelled"  # instance_id, reason
    PHASE_STARTED = "phase.started"  # instance_id, phase_id
    PHASE_EXECUTING = "phase.executing"  # phase_id, instance_id
    PHASE_COMPLETED = "phase.completed"  # instance_id, phase_id
    PHASE_FAILED = "phase.failed"  # instance_id, phase_id, error
    PHASE_RETRYING = "phase.retrying"  # instance_id, phase_id, retry_count
    PHASE_ROLLED_BACK = "phase.rolled_back"  # instance_id, phase_id
    TASK_STARTED = "task.started"  # phase_id, task_id, instance_id
    TASK_EXECUTING = "task.executing"  # task_id, task_type, phase_id
    TRANSITION_REQUESTED = "transition.requested"  # instance_id, target_phase_id
    TRANSITION_APPROVAL_REQUESTED = "transition.approval_requested"  # from, to, approvers
    TRANSITION_COMPLETED = "transition.completed"  # instance_id, from_phase_id, to_phase_id


class EventBus:
    """In-process publish/subscribe notification sink.

    Handlers receive ``(event_type, payload)`` and may be plain functions or
    coroutine functions. A handler registered for ``"*"`` receives every event.
    A failing handler is logged and never propagates to the emitter.

    Example:
        >>> bus = EventBus()
        >>> seen = []
        >>> bus.on("workflow.started", lambda event, payload: seen.append(payload))
        >>> await bus.emit("workflow.started", instance_id="abc", workflow_id="release")
        >>> seen
        [{'instance_id': 'abc', 'workflow_id': 'release'}]
    """

    WILDCARD = "*"

    def __init__(self) -> None:
        self._handlers: dict[str, list[EventHandler]] = defaultdict(list)

    def on(self, event_type: str, handler: EventHandler) -> None:
        """Subscribe ``handler`` to ``event_type`` (or ``"*"`` for every event)."""
        self._handlers[str(event_type)].append(handler)

    def off(self, event_type: str, handler: EventHandler) -> None:
        """Unsubscribe ``handler``; unknown handlers are ignored."""
        handlers = self._handlers.get(str(event_type), [])
        if handler in handlers:
            handlers.remove(handler)

    async def emit(self, event_type: str, **payload: Any) -> None:
        """Deliver an event to its subscribers, in subscription order.

        Args:
            event_type: Name of the event.
            **payload: Structured event payload.
        """
        event_name = str(event_type)
        handlers = [*self._handlers.get(event_name, []), *self._handlers.get(self.WILDCARD, [])]
        for handler in handlers:
            try:
                result = handler(event_name, dict(payload))
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("event_handler_failed", event_type=event_name)
