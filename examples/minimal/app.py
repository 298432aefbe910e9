"""Minimal example of litestar-sdlc integration.

This example registers a small delivery workflow with the SDLCPlugin and
logs every engine event. The REST API is mounted under ``/sdlc``.

Run with:
    cd examples/minimal
    litestar run

Try it:
    curl -X POST localhost:8000/sdlc/instances -H 'content-type: application/json' \\
        -d '{"workflow_id": "delivery", "initial_data": {"completedTasks": ["write-design"]}}'
    curl -X POST localhost:8000/sdlc/instances/<id>/transition -H 'content-type: application/json' \\
        -d '{"target_phase_id": "build", "context": {"approved": true}}'
"""

from __future__ import annotations

from typing import Any

import structlog
from litestar import Litestar, get

from litestar_sdlc import (
    DefinitionRegistry,
    EventBus,
    SDLCPlugin,
    SDLCPluginConfig,
    StateMachineConfig,
    build_state_machine,
)

logger = structlog.get_logger(__name__)

# =============================================================================
# Workflow Definition
# =============================================================================

DELIVERY_WORKFLOW: dict[str, Any] = {
    "id": "delivery",
    "name": "Delivery",
    "description": "Design, build and ship a feature",
    "initialPhase": "design",
    "phases": [
        {
            "id": "design",
            "tasks": [
                {"id": "write-design", "type": "manual", "assignee": "alice", "estimatedDuration": "2 days"},
                {"id": "review-design", "type": "review", "dependencies": ["write-design"]},
            ],
            "nextPhases": ["build"],
        },
        {
            "id": "build",
            "tasks": [
                {"id": "compile", "type": "automated", "tools": ["make"], "estimatedDuration": "10 minutes"},
                {"id": "lint", "type": "automated", "required": False},
                {"id": "unit-tests", "type": "automated", "dependencies": ["compile"]},
            ],
            "nextPhases": ["ship"],
        },
        {
            "id": "ship",
            "tasks": [
                {"id": "release-approval", "type": "approval", "assignee": "Release Manager"},
                {"id": "deploy", "type": "automated", "dependencies": ["release-approval"]},
            ],
        },
    ],
    "transitions": [
        {"from": "design", "to": "build", "conditions": ["Design approved"], "requiresApproval": True},
        {"from": "build", "to": "ship", "conditions": ["Build completed"]},
    ],
}


# =============================================================================
# Application
# =============================================================================


def log_event(event_type: str, payload: dict[str, Any]) -> None:
    logger.info("sdlc_event", event_type=event_type, **{key: str(value) for key, value in payload.items()})


event_bus = EventBus()
event_bus.on(EventBus.WILDCARD, log_event)

registry = DefinitionRegistry([DELIVERY_WORKFLOW])
state_machine = build_state_machine(
    registry,
    event_bus=event_bus,
    config=StateMachineConfig(max_retries=1, retry_delay=500),
)


@get("/health")
async def health_check() -> dict[str, str]:
    """Health check endpoint."""
    return {"status": "healthy"}


app = Litestar(
    route_handlers=[health_check],
    plugins=[SDLCPlugin(config=SDLCPluginConfig(state_machine=state_machine))],
    debug=True,
)
