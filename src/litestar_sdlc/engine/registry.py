"""Definition registry for managing workflow definitions.

This module provides an in-memory definition provider storing workflow
definitions by id.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from litestar_sdlc.core.definition import WorkflowDefinition

if TYPE_CHECKING:
    from litestar_sdlc.core.definition import PhaseDefinition, TransitionDefinition

__all__ = ["DefinitionRegistry"]


class DefinitionRegistry:
    """Registry for storing and retrieving workflow definitions.

    Implements the definition provider interface consumed by the state machine.

    Attributes:
        _definitions: Map of workflow ids to their definitions.
    """

    def __init__(self, definitions: list[WorkflowDefinition | Mapping[str, Any]] | None = None) -> None:
        """Initialize the registry.

        Args:
            definitions: Optional definitions (or mappings) to register immediately.
        """
        self._definitions: dict[str, WorkflowDefinition] = {}
        for definition in definitions or []:
            self.register(definition)

    def register(self, definition: WorkflowDefinition | Mapping[str, Any]) -> WorkflowDefinition:
        """Register a workflow definition, replacing any definition with the same id.

        Args:
            definition: A definition, or a mapping accepted by :meth:`WorkflowDefinition.from_dict`.

        Returns:
            The registered definition.

        Raises:
            ValueError: If the definition fails validation.

        Example:
            >>> registry = DefinitionRegistry()
            >>> registry.register({"id": "release", "initialPhase": "build", "phases": [{"id": "build"}]})
        """
        if not isinstance(definition, WorkflowDefinition):
            definition = WorkflowDefinition.from_dict(definition)

        errors = definition.validate()
        if errors:
            msg = f"Invalid workflow definition '{definition.id}': {'; '.join(errors)}"
            raise ValueError(msg)

        self._definitions[definition.id] = definition
        return definition

    def unregister(self, workflow_id: str) -> None:
        """Remove a workflow from the registry. Unknown ids are ignored."""
        self._definitions.pop(workflow_id, None)

    def has_workflow(self, workflow_id: str) -> bool:
        return workflow_id in self._definitions

    def list_definitions(self) -> list[WorkflowDefinition]:
        """List all registered workflow definitions, in registration order."""
        return list(self._definitions.values())

    def get_workflow(self, workflow_id: str) -> WorkflowDefinition | None:
        return self._definitions.get(workflow_id)

    def get_phase(self, workflow_id: str, phase_id: str) -> PhaseDefinition | None:
        definition = self._definitions.get(workflow_id)
        if definition is None:
            return None
        return definition.get_phase(phase_id)

    def get_available_transitions(self, workflow_id: str, phase_id: str) -> list[TransitionDefinition]:
        definition = self._definitions.get(workflow_id)
        if definition is None:
            return []
        return definition.get_available_transitions(phase_id)
