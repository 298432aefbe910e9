"""REST API controllers for SDLC workflow management.

This module provides two controller classes:
- WorkflowDefinitionController: Browse registered workflow definitions
- WorkflowInstanceController: Start, monitor, and control workflow instances
"""

from __future__ import annotations

from typing import ClassVar
from uuid import UUID

from litestar import Controller, get, post
from litestar.exceptions import NotFoundException
from litestar.params import Parameter
from litestar.status_codes import HTTP_200_OK

from litestar_sdlc.core.types import MachineState
from litestar_sdlc.engine.registry import DefinitionRegistry  # noqa: TC001 - needed for DI
from litestar_sdlc.engine.state_machine import StateMachine  # noqa: TC001 - needed for DI
from litestar_sdlc.web.dto import (
    CancelWorkflowDTO,
    StartWorkflowDTO,
    TransitionDTO,
    WorkflowDefinitionDTO,
    WorkflowInstanceDetailDTO,
    WorkflowInstanceDTO,
)

__all__ = [
    "WorkflowDefinitionController",
    "WorkflowInstanceController",
]


class WorkflowDefinitionController(Controller):
    """API controller for workflow definitions.

    Tags: Workflow Definitions
    """

    path = "/definitions"
    tags: ClassVar[list[str]] = ["Workflow Definitions"]

    @get("/")
    async def list_definitions(self, sdlc_registry: DefinitionRegistry) -> list[WorkflowDefinitionDTO]:
        """List all registered workflow definitions.

        Args:
            sdlc_registry: Injected definition registry.

        Returns:
            List of workflow definition DTOs.
        """
        return [WorkflowDefinitionDTO.from_definition(definition) for definition in sdlc_registry.list_definitions()]

    @get("/{workflow_id:str}")
    async def get_definition(self, workflow_id: str, sdlc_registry: DefinitionRegistry) -> WorkflowDefinitionDTO:
        """Get a specific workflow definition by id.

        Args:
            workflow_id: The workflow id.
            sdlc_registry: Injected definition registry.

        Returns:
            Workflow definition DTO.

        Raises:
            NotFoundException: If workflow definition not found.
        """
        definition = sdlc_registry.get_workflow(workflow_id)
        if definition is None:
            raise NotFoundException(detail=f"Workflow definition '{workflow_id}' not found")
        return WorkflowDefinitionDTO.from_definition(definition)


class WorkflowInstanceController(Controller):
    """API controller for workflow instances.

    Provides endpoints for starting, listing, and controlling workflow
    instance executions. State machine errors are rendered by
    :func:`~litestar_sdlc.web.exceptions.state_machine_error_handler`.

    Tags: Workflow Instances
    """

    path = "/instances"
    tags: ClassVar[list[str]] = ["Workflow Instances"]

    @post("/")
    async def start_workflow(
        self,
        data: StartWorkflowDTO,
        sdlc_state_machine: StateMachine,
    ) -> WorkflowInstanceDetailDTO:
        """Start a new workflow instance.

        The response is sent once the instance has stopped progressing: it
        completed, failed, or waits for an explicit transition.

        Args:
            data: Workflow start parameters.
            sdlc_state_machine: Injected state machine.

        Returns:
            Workflow instance detail DTO.
        """
        instance = await sdlc_state_machine.start_workflow(data.workflow_id, data.initial_data)
        return WorkflowInstanceDetailDTO.from_instance(instance)

    @get("/")
    async def list_instances(
        self,
        sdlc_state_machine: StateMachine,
        state_filter: MachineState | None = Parameter(
            query="state",
            default=None,
            description="Filter by machine state",
        ),
        workflow_id: str | None = Parameter(
            default=None,
            description="Filter by workflow definition id",
        ),
    ) -> list[WorkflowInstanceDTO]:
        """List workflow instances.

        Args:
            sdlc_state_machine: Injected state machine.
            state_filter: Optional machine state filter (``state`` query parameter).
            workflow_id: Optional workflow definition filter.

        Returns:
            List of workflow instance DTOs.
        """
        instances = sdlc_state_machine.list_workflow_instances(state=state_filter, workflow_id=workflow_id)
        return [WorkflowInstanceDTO.from_instance(instance) for instance in instances]

    @get("/{instance_id:uuid}")
    async def get_instance(
        self,
        instance_id: UUID,
        sdlc_state_machine: StateMachine,
    ) -> WorkflowInstanceDetailDTO:
        """Get detailed information about a workflow instance.

        Instances missing from memory are restored from the persistence store.

        Args:
            instance_id: The workflow instance ID.
            sdlc_state_machine: Injected state machine.

        Returns:
            Workflow instance detail DTO.

        Raises:
            NotFoundException: If instance not found.
        """
        instance = await sdlc_state_machine.load_workflow_instance(instance_id)
        if instance is None:
            raise NotFoundException(detail=f"Instance {instance_id} not found")
        return WorkflowInstanceDetailDTO.from_instance(instance)

    @post("/{instance_id:uuid}/pause", status_code=HTTP_200_OK)
    async def pause_instance(
        self,
        instance_id: UUID,
        sdlc_state_machine: StateMachine,
    ) -> WorkflowInstanceDTO:
        await sdlc_state_machine.pause_workflow(instance_id)
        return WorkflowInstanceDTO.from_instance(sdlc_state_machine.get_workflow_instance(instance_id))  # type: ignore[arg-type]

    @post("/{instance_id:uuid}/resume", status_code=HTTP_200_OK)
    async def resume_instance(
        self,
        instance_id: UUID,
        sdlc_state_machine: StateMachine,
    ) -> WorkflowInstanceDetailDTO:
        """Resume a paused workflow instance.

        The current phase is executed again before the response is sent.

        Args:
            instance_id: The workflow instance ID.
            sdlc_state_machine: Injected state machine.

        Returns:
            Workflow instance detail DTO.
        """
        await sdlc_state_machine.resume_workflow(instance_id)
        return WorkflowInstanceDetailDTO.from_instance(sdlc_state_machine.get_workflow_instance(instance_id))  # type: ignore[arg-type]

    @post("/{instance_id:uuid}/cancel", status_code=HTTP_200_OK)
    async def cancel_instance(
        self,
        instance_id: UUID,
        sdlc_state_machine: StateMachine,
        data: CancelWorkflowDTO | None = None,
    ) -> WorkflowInstanceDTO:
        """Cancel a workflow instance.

        Args:
            instance_id: The workflow instance ID.
            sdlc_state_machine: Injected state machine.
            data: Optional cancellation reason.

        Returns:
            Workflow instance DTO with the failed state.
        """
        await sdlc_state_machine.cancel_workflow(instance_id, reason=data.reason if data else None)
        return WorkflowInstanceDTO.from_instance(sdlc_state_machine.get_workflow_instance(instance_id))  # type: ignore[arg-type]

    @post("/{instance_id:uuid}/transition", status_code=HTTP_200_OK)
    async def transition_instance(
        self,
        instance_id: UUID,
        data: TransitionDTO,
        sdlc_state_machine: StateMachine,
    ) -> WorkflowInstanceDetailDTO:
        """Move a workflow instance to another phase.

        Args:
            instance_id: The workflow instance ID.
            data: Target phase and transition context.
            sdlc_state_machine: Injected state machine.

        Returns:
            Workflow instance detail DTO after the target phase ran.
        """
        await sdlc_state_machine.transition_to_phase(instance_id, data.target_phase_id, data.context)
        return WorkflowInstanceDetailDTO.from_instance(sdlc_state_machine.get_workflow_instance(instance_id))  # type: ignore[arg-type]
