"""REST API for litestar-sdlc.

The API is automatically enabled when using SDLCPlugin with enable_api=True
(the default).

Example:
    Basic usage with SDLCPlugin (API enabled by default)::

        from litestar import Litestar
        from litestar_sdlc import SDLCPlugin, SDLCPluginConfig

        app = Litestar(
            plugins=[
                SDLCPlugin(
                    config=SDLCPluginConfig(
                        auto_register_workflows=[release_workflow],
                        api_path_prefix="/sdlc",
                    )
                ),
            ],
        )

    With authentication guards::

        config = SDLCPluginConfig(
            api_path_prefix="/api/v1/sdlc",
            api_guards=[require_auth_guard],
        )
"""

from __future__ import annotations

from litestar_sdlc.web.controllers import (
    WorkflowDefinitionController,
    WorkflowInstanceController,
)
from litestar_sdlc.web.dto import (
    CancelWorkflowDTO,
    PhaseInstanceDTO,
    StartWorkflowDTO,
    TaskInstanceDTO,
    TransitionDTO,
    WorkflowDefinitionDTO,
    WorkflowInstanceDetailDTO,
    WorkflowInstanceDTO,
)
from litestar_sdlc.web.exceptions import state_machine_error_handler, status_code_for

__all__ = [
    "CancelWorkflowDTO",
    "PhaseInstanceDTO",
    "StartWorkflowDTO",
    "TaskInstanceDTO",
    "TransitionDTO",
    "WorkflowDefinitionController",
    "WorkflowDefinitionDTO",
    "WorkflowInstanceController",
    "WorkflowInstanceDTO",
    "WorkflowInstanceDetailDTO",
    "state_machine_error_handler",
    "status_code_for",
]
