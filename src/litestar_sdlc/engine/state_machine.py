"""Hierarchical workflow state machine.

This module provides the top-level orchestrator owning every workflow
instance. It drives phase execution, validates and performs phase
transitions, applies the retry policy around phase failures and persists the
instance after every mutation.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any
from uuid import UUID, uuid4

import structlog

from litestar_sdlc.config import DEFAULT_STATE_MACHINE_CONFIG
from litestar_sdlc.core.context import PhaseContext, TransitionContext
from litestar_sdlc.core.events import EventBus, WorkflowEventType
from litestar_sdlc.core.models import PhaseInstance, WorkflowInstance, utcnow
from litestar_sdlc.core.types import MachineState, PhaseState
from litestar_sdlc.engine.base import notify
from litestar_sdlc.engine.phase_executor import PhaseExecutor
from litestar_sdlc.engine.task_executor import TaskExecutor
from litestar_sdlc.engine.transition_validator import TransitionValidator
from litestar_sdlc.exceptions import ErrorCode, StateMachineError, TransitionError
from litestar_sdlc.persistence.memory import InMemoryPersistence

if TYPE_CHECKING:
    from litestar_sdlc.config import StateMachineConfig
    from litestar_sdlc.core.definition import PhaseDefinition
    from litestar_sdlc.core.protocols import (
        DefinitionProvider,
        NotificationSink,
        PhaseRunner,
        TransitionGate,
        WorkflowPersistence,
    )

__all__ = ["StateMachine", "build_state_machine"]

logger = structlog.get_logger(__name__)

DEFAULT_CANCEL_REASON = "Workflow cancelled"


class StateMachine:
    """Orchestrates workflow instances through their phases.

    Every state change of an instance happens under a short per-instance
    lock, so pause, resume, transitions and phase bookkeeping never interleave
    on the same instance while distinct instances progress concurrently. Phase
    execution itself runs outside that lock; a second per-instance run lock
    only keeps two executions of the same instance from overlapping. Each
    execution carries a run number, and it stops at the next task frontier or
    phase boundary once the instance is no longer running or a later resume
    took over. Cancellation does not wait for any lock: it marks the instance
    terminal at once, and tasks still in flight settle without advancing the
    instance any further.

    Attributes:
        definitions: Provider of workflow and phase definitions.
        transition_validator: Decides whether a phase change is allowed.
        phase_executor: Runs the tasks of a phase.
        persistence: Optional snapshot store.
        event_bus: Optional notification sink.
        config: Engine configuration.
        _instances: In-memory table of workflow instances by id.
        _locks: Per-instance locks guarding state changes.
        _run_locks: Per-instance locks held while a phase chain executes.
        _runs: Number of the execution currently driving each instance.
    """

    def __init__(
        self,
        definitions: DefinitionProvider,
        transition_validator: TransitionGate,
        phase_executor: PhaseRunner,
        persistence: WorkflowPersistence | None = None,
        event_bus: NotificationSink | None = None,
        config: StateMachineConfig | None = None,
    ) -> None:
        """Initialize the state machine.

        Args:
            definitions: Provider of workflow and phase definitions.
            transition_validator: Decides whether a phase change is allowed.
            phase_executor: Runs the tasks of a phase.
            persistence: Optional snapshot store.
            event_bus: Optional notification sink.
            config: Engine configuration; defaults to ``DEFAULT_STATE_MACHINE_CONFIG``.
        """
        self.definitions = definitions
        self.transition_validator = transition_validator
        self.phase_executor = phase_executor
        self.persistence = persistence
        self.event_bus = event_bus
        self.config = config or DEFAULT_STATE_MACHINE_CONFIG
        self._instances: dict[UUID, WorkflowInstance] = {}
        self._locks: dict[UUID, asyncio.Lock] = {}
        self._run_locks: dict[UUID, asyncio.Lock] = {}
        self._runs: dict[UUID, int] = {}

    @property
    def persistence_enabled(self) -> bool:
        return self.config.enable_persistence and self.persistence is not None

    async def start_workflow(
        self,
        workflow_id: str,
        initial_data: dict[str, Any] | None = None,
    ) -> WorkflowInstance:
        """Create a workflow instance and execute its initial phase.

        The call returns once the initial phase (and every phase it
        auto-transitions into) has been executed, so the returned instance may
        already be completed or failed.

        Args:
            workflow_id: Id of the workflow definition.
            initial_data: Run-time metadata for the instance (``autoApprove``,
                ``completedTasks``, ``approved``, ...).

        Returns:
            The workflow instance.

        Raises:
            StateMachineError: ``WORKFLOW_NOT_FOUND`` if the definition is unknown.

        Example:
            >>> instance = await state_machine.start_workflow("release", {"autoApprove": True})
            >>> instance.state
            <MachineState.COMPLETED: 'completed'>
        """
        log = logger.bind(component="StateMachine", workflow_id=workflow_id)
        log.info("starting_workflow")

        workflow = self.definitions.get_workflow(workflow_id)
        if workflow is None:
            raise StateMachineError("Workflow not found", ErrorCode.WORKFLOW_NOT_FOUND, {"workflow_id": workflow_id})

        instance = WorkflowInstance(
            id=uuid4(),
            workflow_id=workflow_id,
            name=workflow.name,
            state=MachineState.RUNNING,
            current_phase_id=workflow.initial_phase,
            phase_states={phase.id: PhaseInstance(phase_id=phase.id) for phase in workflow.phases},
            started_at=utcnow(),
            metadata=dict(initial_data or {}),
        )
        if self.persistence_enabled:
            await self.persistence.save(instance)  # type: ignore[union-attr]
        self._instances[instance.id] = instance
        run = self._claim_run(instance.id)

        async with self._run_lock_for(instance.id):
            await notify(
                self.event_bus,
                WorkflowEventType.WORKFLOW_STARTED,
                instance_id=instance.id,
                workflow_id=workflow_id,
            )
            await self._execute_phase(instance, workflow.initial_phase, run)

        return instance

    async def pause_workflow(self, instance_id: UUID) -> None:
        """Pause a running workflow instance.

        The pause takes effect at once, even while a phase is executing: tasks
        already in flight settle, but no further task, retry or transition is
        started until the instance is resumed.

        Args:
            instance_id: The workflow instance ID.

        Raises:
            StateMachineError: ``INSTANCE_NOT_FOUND`` or ``INVALID_STATE`` if not running.
        """
        logger.info("pausing_workflow", instance_id=str(instance_id))
        instance = self._require_instance(instance_id)

        async with self._lock_for(instance_id):
            self._require_state(instance, MachineState.RUNNING, "Cannot pause workflow in current state")
            instance.state = MachineState.PAUSED
            await self._persist(instance)

        await notify(self.event_bus, WorkflowEventType.WORKFLOW_PAUSED, instance_id=instance_id)

    async def resume_workflow(self, instance_id: UUID) -> None:
        """Resume a paused workflow instance and re-execute its current phase.

        Args:
            instance_id: The workflow instance ID.

        Raises:
            StateMachineError: ``INSTANCE_NOT_FOUND`` or ``INVALID_STATE`` if not paused.
        """
        logger.info("resuming_workflow", instance_id=str(instance_id))
        instance = self._require_instance(instance_id)

        async with self._lock_for(instance_id):
            self._require_state(instance, MachineState.PAUSED, "Cannot resume workflow in current state")
            instance.state = MachineState.RUNNING
            run = self._claim_run(instance_id)
            await self._persist(instance)

        await notify(self.event_bus, WorkflowEventType.WORKFLOW_RESUMED, instance_id=instance_id)

        if instance.current_phase_id:
            async with self._run_lock_for(instance_id):
                await self._execute_phase(instance, instance.current_phase_id, run)

    async def cancel_workflow(self, instance_id: UUID, reason: str | None = None) -> None:
        """Cancel a workflow instance immediately.

        The instance becomes ``failed`` with ``reason`` as its error, even if a
        phase is executing; that phase's outcome is then ignored.

        Args:
            instance_id: The workflow instance ID.
            reason: Cancellation reason; defaults to ``"Workflow cancelled"``.

        Raises:
            StateMachineError: ``INSTANCE_NOT_FOUND``, or ``INVALID_STATE`` if the
                instance already reached a terminal state.
        """
        message = reason or DEFAULT_CANCEL_REASON
        logger.info("cancelling_workflow", instance_id=str(instance_id), reason=message)
        instance = self._require_instance(instance_id)

        if instance.state.is_terminal:
            raise StateMachineError(
                "Cannot cancel workflow in a terminal state",
                ErrorCode.INVALID_STATE,
                {"instance_id": str(instance_id), "current_state": str(instance.state)},
            )

        instance.state = MachineState.FAILED
        instance.completed_at = utcnow()
        instance.error = message
        await self._persist(instance)

        await notify(self.event_bus, WorkflowEventType.WORKFLOW_CANCELLED, instance_id=instance_id, reason=message)

    def get_workflow_instance(self, instance_id: UUID) -> WorkflowInstance | None:
        return self._instances.get(instance_id)

    def list_workflow_instances(
        self,
        state: MachineState | None = None,
        workflow_id: str | None = None,
    ) -> list[WorkflowInstance]:
        """List the instances owned by this state machine.

        Args:
            state: Optional machine state filter.
            workflow_id: Optional workflow definition filter.

        Returns:
            Matching instances, in creation order.
        """
        return [
            instance
            for instance in self._instances.values()
            if (state is None or instance.state == state) and (workflow_id is None or instance.workflow_id == workflow_id)
        ]

    async def load_workflow_instance(self, instance_id: UUID) -> WorkflowInstance | None:
        """Restore an instance from the persistence store into the instance table.

        An instance already held in memory is returned as-is.

        Args:
            instance_id: The workflow instance ID.

        Returns:
            The instance, or ``None`` if neither memory nor the store holds it.
        """
        instance = self._instances.get(instance_id)
        if instance is not None or not self.persistence_enabled:
            return instance

        instance = await self.persistence.load(instance_id)  # type: ignore[union-attr]
        if instance is not None:
            self._instances[instance.id] = instance
            logger.info("workflow_instance_restored", instance_id=str(instance_id), state=str(instance.state))
        return instance

    async def transition_to_phase(
        self,
        instance_id: UUID,
        target_phase_id: str,
        context: dict[str, Any] | None = None,
    ) -> None:
        """Move a running workflow instance to another phase and execute it.

        Args:
            instance_id: The workflow instance ID.
            target_phase_id: The phase to move to.
            context: Transition metadata such as ``{"approved": True}``.

        Raises:
            StateMachineError: ``INSTANCE_NOT_FOUND``, ``NO_CURRENT_PHASE``,
                ``WORKFLOW_NOT_FOUND``, or ``INVALID_STATE`` if the instance is not running.
            TransitionError: If the phases or the transition are unknown, or validation fails.
        """
        instance = self._require_instance(instance_id)

        async with self._run_lock_for(instance_id):
            self._require_state(instance, MachineState.RUNNING, "Cannot transition workflow in current state")
            if not await self._transition(instance, target_phase_id, context, self._runs.get(instance_id, 0)):
                self._require_state(instance, MachineState.RUNNING, "Cannot transition workflow in current state")

    async def rollback_phase(self, instance_id: UUID, phase_id: str) -> None:
        """Roll back a phase's task state when rollback is enabled.

        Args:
            instance_id: The workflow instance ID.
            phase_id: The phase to roll back.

        Raises:
            StateMachineError: ``INSTANCE_NOT_FOUND``, ``PHASE_NOT_FOUND``,
                ``PHASE_INSTANCE_NOT_FOUND``, or ``INVALID_STATE`` if rollback is disabled.
        """
        instance = self._require_instance(instance_id)
        if not self.config.enable_rollback:
            raise StateMachineError("Rollback is disabled", ErrorCode.INVALID_STATE, {"instance_id": str(instance_id)})

        async with self._lock_for(instance_id):
            phase, phase_instance = self._resolve_phase(instance, phase_id)
            await self.phase_executor.rollback_phase(
                PhaseContext(workflow_instance=instance, phase=phase, phase_instance=phase_instance, metadata=instance.metadata)
            )
            await self._persist(instance)

        await notify(self.event_bus, WorkflowEventType.PHASE_ROLLED_BACK, instance_id=instance_id, phase_id=phase_id)

    async def _transition(
        self,
        instance: WorkflowInstance,
        target_phase_id: str,
        context: dict[str, Any] | None,
        run: int,
    ) -> bool:
        """Validate and commit a move to ``target_phase_id``, then execute that phase.

        Returns:
            False if the instance stopped running before the move was committed.
        """
        log = logger.bind(component="StateMachine", instance_id=str(instance.id), target_phase_id=target_phase_id)
        await notify(
            self.event_bus,
            WorkflowEventType.TRANSITION_REQUESTED,
            instance_id=instance.id,
            target_phase_id=target_phase_id,
        )
        log.info("transitioning_to_phase")

        current_phase_id = instance.current_phase_id
        if current_phase_id is None:
            raise StateMachineError("No current phase", ErrorCode.NO_CURRENT_PHASE, {"instance_id": str(instance.id)})

        if self.definitions.get_workflow(instance.workflow_id) is None:
            raise StateMachineError(
                "Workflow not found", ErrorCode.WORKFLOW_NOT_FOUND, {"workflow_id": instance.workflow_id}
            )

        from_phase = self.definitions.get_phase(instance.workflow_id, current_phase_id)
        to_phase = self.definitions.get_phase(instance.workflow_id, target_phase_id)
        if from_phase is None or to_phase is None:
            raise TransitionError("Invalid phase reference", current_phase_id, target_phase_id)

        transitions = self.definitions.get_available_transitions(instance.workflow_id, current_phase_id)
        transition = next((t for t in transitions if t.to_phase == target_phase_id), None)
        if transition is None:
            raise TransitionError("No valid transition found", current_phase_id, target_phase_id)

        transition_context = TransitionContext(
            workflow_instance=instance,
            from_phase=from_phase,
            to_phase=to_phase,
            transition=transition,
            metadata=context,
        )
        if not await self.transition_validator.can_transition(transition_context):
            raise TransitionError(
                "Transition validation failed",
                current_phase_id,
                target_phase_id,
                {"context": context},
            )

        async with self._lock_for(instance.id):
            if not self._owns_run(instance, run) or instance.current_phase_id != current_phase_id:
                log.info("transition_abandoned", state=str(instance.state))
                return False

            outgoing = instance.phase_states.get(current_phase_id)
            if outgoing is not None:
                outgoing.state = PhaseState.COMPLETED
                outgoing.completed_at = utcnow()
            instance.current_phase_id = target_phase_id
            await self._persist(instance)

        await notify(
            self.event_bus,
            WorkflowEventType.TRANSITION_COMPLETED,
            instance_id=instance.id,
            from_phase_id=current_phase_id,
            to_phase_id=target_phase_id,
        )

        await self._execute_phase(instance, target_phase_id, run)
        return True

    async def _execute_phase(self, instance: WorkflowInstance, phase_id: str, run: int) -> None:
        log = logger.bind(component="StateMachine", instance_id=str(instance.id), phase_id=phase_id)
        phase, phase_instance = self._resolve_phase(instance, phase_id)

        while True:
            async with self._lock_for(instance.id):
                if not self._owns_run(instance, run):
                    log.info("phase_execution_abandoned", state=str(instance.state))
                    return

                phase_instance.state = PhaseState.ACTIVE
                phase_instance.started_at = utcnow()
                phase_instance.completed_at = None
                phase_instance.error = None
                await self._persist(instance)

            await notify(self.event_bus, WorkflowEventType.PHASE_STARTED, instance_id=instance.id, phase_id=phase_id)
            log.info("executing_phase", attempt=phase_instance.retry_count + 1)

            try:
                await self.phase_executor.execute_phase(
                    PhaseContext(
                        workflow_instance=instance,
                        phase=phase,
                        phase_instance=phase_instance,
                        metadata=instance.metadata,
                    )
                )
            except Exception as e:
                async with self._lock_for(instance.id):
                    if not self._owns_run(instance, run):
                        log.info("phase_failure_ignored", state=str(instance.state), error=str(e))
                        return

                    log.error("phase_execution_failed", error=str(e))
                    phase_instance.state = PhaseState.FAILED
                    phase_instance.error = str(e)
                    phase_instance.completed_at = utcnow()
                    retrying = self.config.enable_retries and phase_instance.retry_count < self.config.max_retries
                    if retrying:
                        phase_instance.retry_count += 1
                    else:
                        logger.error("workflow_failed", instance_id=str(instance.id), error=str(e))
                        instance.state = MachineState.FAILED
                        instance.completed_at = utcnow()
                        instance.error = str(e)
                    await self._persist(instance)

                await notify(
                    self.event_bus,
                    WorkflowEventType.PHASE_FAILED,
                    instance_id=instance.id,
                    phase_id=phase_id,
                    error=str(e),
                )
                if not retrying:
                    await notify(self.event_bus, WorkflowEventType.WORKFLOW_FAILED, instance_id=instance.id, error=str(e))
                    return

                log.info("retrying_phase", retry_count=phase_instance.retry_count)
                await notify(
                    self.event_bus,
                    WorkflowEventType.PHASE_RETRYING,
                    instance_id=instance.id,
                    phase_id=phase_id,
                    retry_count=phase_instance.retry_count,
                )
                await asyncio.sleep(self.config.retry_delay_seconds)
                continue

            break

        async with self._lock_for(instance.id):
            if not self._owns_run(instance, run):
                log.info("phase_result_ignored", state=str(instance.state))
                return

            phase_instance.state = PhaseState.COMPLETED
            phase_instance.completed_at = utcnow()
            await self._persist(instance)

        await notify(self.event_bus, WorkflowEventType.PHASE_COMPLETED, instance_id=instance.id, phase_id=phase_id)

        await self._advance(instance, phase, run)

    async def _advance(self, instance: WorkflowInstance, phase: PhaseDefinition, run: int) -> None:
        """Move past a completed phase.

        No next phase completes the workflow. A single next phase is entered
        automatically unless its transition waits for approval. Several next
        phases wait for an explicit :meth:`transition_to_phase`.
        """
        log = logger.bind(component="StateMachine", instance_id=str(instance.id), phase_id=phase.id)

        if not phase.next_phases:
            await self._complete_workflow(instance, run)
            return

        if len(phase.next_phases) > 1:
            log.info("awaiting_explicit_transition", next_phases=list(phase.next_phases))
            return

        next_phase_id = phase.next_phases[0]
        transition = next(
            (
                t
                for t in self.definitions.get_available_transitions(instance.workflow_id, phase.id)
                if t.to_phase == next_phase_id
            ),
            None,
        )
        if transition is not None and transition.requires_approval and not self._is_preapproved(instance):
            log.info("awaiting_transition_approval", next_phase_id=next_phase_id, approvers=list(transition.approvers))
            return

        if not self._owns_run(instance, run):
            log.info("auto_transition_abandoned", state=str(instance.state))
            return

        try:
            await self._transition(instance, next_phase_id, dict(instance.metadata), run)
        except TransitionError as e:
            log.warning("auto_transition_refused", next_phase_id=next_phase_id, error=str(e))

    async def _complete_workflow(self, instance: WorkflowInstance, run: int) -> None:
        async with self._lock_for(instance.id):
            if not self._owns_run(instance, run):
                logger.info("workflow_completion_abandoned", instance_id=str(instance.id), state=str(instance.state))
                return

            logger.info("completing_workflow", instance_id=str(instance.id))
            instance.state = MachineState.COMPLETED
            instance.completed_at = utcnow()
            await self._persist(instance)

        await notify(self.event_bus, WorkflowEventType.WORKFLOW_COMPLETED, instance_id=instance.id)

    async def _persist(self, instance: WorkflowInstance) -> None:
        if self.persistence_enabled:
            await self.persistence.update(instance.id, instance)  # type: ignore[union-attr]

    def _claim_run(self, instance_id: UUID) -> int:
        self._runs[instance_id] = self._runs.get(instance_id, 0) + 1
        return self._runs[instance_id]

    def _owns_run(self, instance: WorkflowInstance, run: int) -> bool:
        return instance.state == MachineState.RUNNING and self._runs.get(instance.id, 0) == run

    def _run_lock_for(self, instance_id: UUID) -> asyncio.Lock:
        return self._run_locks.setdefault(instance_id, asyncio.Lock())

    def _lock_for(self, instance_id: UUID) -> asyncio.Lock:
        return self._locks.setdefault(instance_id, asyncio.Lock())

    def _require_instance(self, instance_id: UUID) -> WorkflowInstance:
        instance = self._instances.get(instance_id)
        if instance is None:
            raise StateMachineError(
                "Workflow instance not found", ErrorCode.INSTANCE_NOT_FOUND, {"instance_id": str(instance_id)}
            )
        return instance

    @staticmethod
    def _require_state(instance: WorkflowInstance, expected: MachineState, message: str) -> None:
        if instance.state != expected:
            raise StateMachineError(
                message,
                ErrorCode.INVALID_STATE,
                {"instance_id": str(instance.id), "current_state": str(instance.state)},
            )

    def _resolve_phase(self, instance: WorkflowInstance, phase_id: str) -> tuple[PhaseDefinition, PhaseInstance]:
        phase = self.definitions.get_phase(instance.workflow_id, phase_id)
        if phase is None:
            raise StateMachineError(
                "Phase not found",
                ErrorCode.PHASE_NOT_FOUND,
                {"workflow_id": instance.workflow_id, "phase_id": phase_id},
            )

        phase_instance = instance.phase_states.get(phase_id)
        if phase_instance is None:
            raise StateMachineError(
                "Phase instance not found",
                ErrorCode.PHASE_INSTANCE_NOT_FOUND,
                {"instance_id": str(instance.id), "phase_id": phase_id},
            )
        return phase, phase_instance

    @staticmethod
    def _is_preapproved(instance: WorkflowInstance) -> bool:
        return instance.metadata.get("approved") is True or instance.metadata.get("autoApprove") is True


def build_state_machine(
    definitions: DefinitionProvider,
    *,
    persistence: WorkflowPersistence | None = None,
    event_bus: EventBus | None = None,
    config: StateMachineConfig | None = None,
    time_scale: float = 1.0,
) -> StateMachine:
    """Wire a state machine with the default collaborators.

    Args:
        definitions: Provider of workflow and phase definitions.
        persistence: Snapshot store; defaults to a new :class:`InMemoryPersistence`.
        event_bus: Event bus shared by every component; defaults to a new :class:`EventBus`.
        config: Engine configuration.
        time_scale: Multiplier applied to simulated task durations.

    Returns:
        A ready to use state machine.
    """
    event_bus = event_bus if event_bus is not None else EventBus()
    task_executor = TaskExecutor(event_bus, time_scale=time_scale)
    return StateMachine(
        definitions=definitions,
        transition_validator=TransitionValidator(event_bus),
        phase_executor=PhaseExecutor(task_executor, event_bus),
        persistence=persistence if persistence is not None else InMemoryPersistence(),
        event_bus=event_bus,
        config=config,
    )
