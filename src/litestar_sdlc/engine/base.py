"""Shared helpers for engine components."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import structlog

if TYPE_CHECKING:
    from litestar_sdlc.core.protocols import NotificationSink

__all__ = ["notify"]

logger = structlog.get_logger(__name__)


async def notify(event_bus: NotificationSink | None, event_type: str, **payload: Any) -> None:
    """Emit an event without letting a sink failure reach the caller.

    Args:
        event_bus: The notification sink, or ``None`` to emit nothing.
        event_type: Name of the event.
        **payload: Structured event payload.
    """
    if event_bus is None:
        return
    try:
        await event_bus.emit(str(event_type), **payload)
    except Exception:
        logger.exception("notification_failed", event_type=str(event_type))
