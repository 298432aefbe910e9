"""Litestar plugin for SDLC workflow integration.

This module provides the SDLCPlugin for integrating the litestar-sdlc state
machine with Litestar applications.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from litestar.di import Provide
from litestar.plugins import InitPluginProtocol

from litestar_sdlc.engine.registry import DefinitionRegistry
from litestar_sdlc.engine.state_machine import StateMachine, build_state_machine

if TYPE_CHECKING:
    from collections.abc import Mapping

    from litestar.config.app import AppConfig

    from litestar_sdlc.config import StateMachineConfig
    from litestar_sdlc.core.definition import WorkflowDefinition

__all__ = ["SDLCPlugin", "SDLCPluginConfig"]


@dataclass
class SDLCPluginConfig:
    """Configuration for the SDLCPlugin.

    Attributes:
        registry: Optional pre-configured DefinitionRegistry. If not provided,
            the registry of ``state_machine`` is used, or a new one is created.
        state_machine: Optional pre-configured StateMachine. If not provided,
            one is built with the default executors, an EventBus and an
            InMemoryPersistence store.
        state_machine_config: Configuration of the state machine built by the plugin.
        auto_register_workflows: Workflow definitions (or mappings) to register
            with the registry on app startup.
        dependency_key_registry: The key used for dependency injection of
            the DefinitionRegistry. Defaults to "sdlc_registry".
        dependency_key_state_machine: The key used for dependency injection of
            the StateMachine. Defaults to "sdlc_state_machine".
        enable_api: Whether to enable the REST API endpoints. Defaults to True.
        api_path_prefix: URL path prefix for all API endpoints. Defaults to "/sdlc".
        api_guards: List of Litestar guards to apply to all API endpoints.
        api_tags: OpenAPI tags to apply to the API endpoints.
        include_api_in_schema: Whether to include API endpoints in OpenAPI schema.
            Defaults to True.
    """

    registry: DefinitionRegistry | None = None
    state_machine: StateMachine | None = None
    state_machine_config: StateMachineConfig | None = None
    auto_register_workflows: list[WorkflowDefinition | Mapping[str, Any]] = field(default_factory=list)
    dependency_key_registry: str = "sdlc_registry"
    dependency_key_state_machine: str = "sdlc_state_machine"
    enable_api: bool = True
    api_path_prefix: str = "/sdlc"
    api_guards: list[Any] = field(default_factory=list)
    api_tags: list[str] = field(default_factory=lambda: ["SDLC"])
    include_api_in_schema: bool = True


class SDLCPlugin(InitPluginProtocol):
    """Litestar plugin for SDLC workflow orchestration.

    This plugin provides dependency injection for the DefinitionRegistry and
    the StateMachine, and mounts the REST API.

    Example:
        Basic usage with auto-registration::

            from litestar import Litestar
            from litestar_sdlc import SDLCPlugin, SDLCPluginConfig

            release = {
                "id": "release",
                "initialPhase": "build",
                "phases": [{"id": "build", "tasks": [{"id": "compile", "type": "automated"}]}],
            }

            app = Litestar(plugins=[SDLCPlugin(config=SDLCPluginConfig(auto_register_workflows=[release]))])

        Using in a route handler::

            from litestar import post
            from litestar_sdlc import StateMachine


            @post("/releases")
            async def start_release(sdlc_state_machine: StateMachine) -> dict:
                instance = await sdlc_state_machine.start_workflow("release", {"autoApprove": True})
                return {"instance_id": str(instance.id), "state": instance.state}
    """

    __slots__ = ("_config", "_registry", "_state_machine")

    def __init__(self, config: SDLCPluginConfig | None = None) -> None:
        """Initialize the plugin.

        Args:
            config: Optional configuration for the plugin.
        """
        self._config = config or SDLCPluginConfig()
        self._registry: DefinitionRegistry | None = None
        self._state_machine: StateMachine | None = None

    @property
    def registry(self) -> DefinitionRegistry:
        """Get the definition registry.

        Raises:
            RuntimeError: If accessed before plugin initialization.
        """
        if self._registry is None:
            msg = "SDLCPlugin has not been initialized. Access registry after app startup."
            raise RuntimeError(msg)
        return self._registry

    @property
    def state_machine(self) -> StateMachine:
        """Get the state machine.

        Raises:
            RuntimeError: If accessed before plugin initialization.
        """
        if self._state_machine is None:
            msg = "SDLCPlugin has not been initialized. Access state_machine after app startup."
            raise RuntimeError(msg)
        return self._state_machine

    def on_app_init(self, app_config: AppConfig) -> AppConfig:
        """Initialize the plugin when the Litestar app starts.

        This method:
        1. Resolves or creates the DefinitionRegistry
        2. Resolves or builds the StateMachine
        3. Registers any auto_register_workflows
        4. Adds dependency providers to the app config
        5. Optionally registers REST API controllers if enable_api=True

        Args:
            app_config: The Litestar application configuration.

        Returns:
            The modified application configuration.
        """
        self._registry = self._resolve_registry()
        self._state_machine = self._config.state_machine or build_state_machine(
            self._registry,
            config=self._config.state_machine_config,
        )

        for definition in self._config.auto_register_workflows:
            self._registry.register(definition)

        def provide_registry() -> DefinitionRegistry:
            return self._registry  # type: ignore[return-value]

        def provide_state_machine() -> StateMachine:
            return self._state_machine  # type: ignore[return-value]

        app_config.dependencies[self._config.dependency_key_registry] = Provide(
            provide_registry,
            sync_to_thread=False,
        )
        app_config.dependencies[self._config.dependency_key_state_machine] = Provide(
            provide_state_machine,
            sync_to_thread=False,
        )

        if self._config.enable_api:
            from litestar import Router

            from litestar_sdlc.exceptions import StateMachineError
            from litestar_sdlc.web.controllers import WorkflowDefinitionController, WorkflowInstanceController
            from litestar_sdlc.web.exceptions import state_machine_error_handler

            sdlc_router = Router(
                path=self._config.api_path_prefix,
                route_handlers=[WorkflowDefinitionController, WorkflowInstanceController],
                guards=self._config.api_guards,
                tags=self._config.api_tags,
                include_in_schema=self._config.include_api_in_schema,
            )
            app_config.route_handlers.append(sdlc_router)
            app_config.exception_handlers[StateMachineError] = state_machine_error_handler  # type: ignore[assignment]

        return app_config

    def _resolve_registry(self) -> DefinitionRegistry:
        if self._config.registry is not None:
            return self._config.registry
        if self._config.state_machine is not None and isinstance(self._config.state_machine.definitions, DefinitionRegistry):
            return self._config.state_machine.definitions
        return DefinitionRegistry()
