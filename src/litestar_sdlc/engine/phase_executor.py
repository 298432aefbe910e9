"""Dependency-aware phase execution.

The phase executor runs the task graph of one phase in layers: every task
whose dependencies are resolved forms the frontier, the whole frontier runs
concurrently, and the next frontier is computed only after every task of the
current one has settled.
"""

from __future__ import annotations

import asyncio
import inspect
from typing import TYPE_CHECKING, Any

import structlog

from litestar_sdlc.core.events import WorkflowEventType
from litestar_sdlc.core.models import TaskInstance, utcnow
from litestar_sdlc.core.types import MachineState, PhaseState, TaskState
from litestar_sdlc.engine.base import notify
from litestar_sdlc.exceptions import PhaseExecutionError

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from litestar_sdlc.core.context import PhaseContext
    from litestar_sdlc.core.definition import TaskDefinition
    from litestar_sdlc.core.protocols import NotificationSink, TaskRunner

    CompletionCheck = Callable[[PhaseContext], bool | Awaitable[bool]]

__all__ = ["PhaseExecutor"]

logger = structlog.get_logger(__name__)


class PhaseExecutor:
    """Schedules and runs the tasks of a phase.

    Required task failures fail the phase once the current frontier has
    settled; optional task failures are tolerated, the task is marked skipped
    and counts as resolved for its dependents.

    Attributes:
        task_executor: Performs individual tasks.
        event_bus: Optional notification sink.
        completion_check: Optional extra check of exit conditions and deliverables.
    """

    def __init__(
        self,
        task_executor: TaskRunner,
        event_bus: NotificationSink | None = None,
        completion_check: CompletionCheck | None = None,
    ) -> None:
        """Initialize the phase executor.

        Args:
            task_executor: Performs individual tasks.
            event_bus: Optional notification sink.
            completion_check: Optional callable evaluating a phase's exit conditions
                and deliverables after its required tasks completed.
        """
        self.task_executor = task_executor
        self.event_bus = event_bus
        self.completion_check = completion_check

    async def execute_phase(self, context: PhaseContext) -> None:
        """Run every task of the phase, respecting dependencies.

        Args:
            context: The phase context.

        Raises:
            PhaseExecutionError: If tasks cannot be scheduled (cyclic or blocked
                dependencies), a required task failed, or completion validation failed.
        """
        phase = context.phase
        phase_instance = context.phase_instance
        log = logger.bind(component="PhaseExecutor", phase_id=phase.id, instance_id=str(context.workflow_instance.id))

        await notify(
            self.event_bus,
            WorkflowEventType.PHASE_EXECUTING,
            phase_id=phase.id,
            instance_id=context.workflow_instance.id,
        )
        log.info("executing_phase", task_count=len(phase.tasks))

        for task in phase.tasks:
            if task.id not in phase_instance.task_states:
                phase_instance.task_states[task.id] = TaskInstance(task_id=task.id)

        executed: set[str] = set()
        failed: set[str] = set()

        while len(executed) + len(failed) < len(phase.tasks):
            pending = [task.id for task in phase.tasks if task.id not in executed and task.id not in failed]
            if context.workflow_instance.state != MachineState.RUNNING:
                log.info("phase_execution_halted", state=str(context.workflow_instance.state), pending_tasks=pending)
                raise PhaseExecutionError(
                    "Workflow is no longer running",
                    phase.id,
                    {"state": str(context.workflow_instance.state), "pending_tasks": pending},
                )

            frontier = [
                task
                for task in phase.tasks
                if task.id not in executed
                and task.id not in failed
                and all(dependency in executed for dependency in task.dependencies)
            ]

            if not frontier:
                log.error("unsatisfied_dependencies", pending_tasks=pending, failed_tasks=sorted(failed))
                raise PhaseExecutionError(
                    "Cannot execute remaining tasks due to unsatisfied dependencies",
                    phase.id,
                    {"pending_tasks": pending, "failed_tasks": sorted(failed)},
                )

            outcomes = await asyncio.gather(
                *(self._execute_task(context, task) for task in frontier),
                return_exceptions=True,
            )

            for task, outcome in zip(frontier, outcomes):
                if not isinstance(outcome, BaseException):
                    executed.add(task.id)
                elif not isinstance(outcome, Exception):
                    raise outcome
                elif task.required:
                    failed.add(task.id)
                    log.error("required_task_failed", task_id=task.id, error=str(outcome))
                else:
                    phase_instance.task_states[task.id].state = TaskState.SKIPPED
                    executed.add(task.id)
                    log.warning("optional_task_failed_skipping", task_id=task.id, error=str(outcome))

        if failed:
            raise PhaseExecutionError(
                "Phase execution failed due to required task failures",
                phase.id,
                {"failed_tasks": sorted(failed)},
            )

        if not await self.validate_phase_completion(context):
            raise PhaseExecutionError("Phase completion validation failed", phase.id)

        log.info("phase_execution_completed")

    async def _execute_task(self, context: PhaseContext, task: TaskDefinition) -> Any:
        await notify(
            self.event_bus,
            WorkflowEventType.TASK_STARTED,
            phase_id=context.phase.id,
            task_id=task.id,
            instance_id=context.workflow_instance.id,
        )
        logger.info("executing_task", phase_id=context.phase.id, task_id=task.id, type=str(task.type), required=task.required)

        task_context = context.for_task(task)
        task_instance = task_context.task_instance
        task_instance.state = TaskState.RUNNING
        task_instance.started_at = utcnow()
        task_instance.completed_at = None
        task_instance.error = None
        task_instance.result = None

        try:
            result = await self.task_executor.execute_task(task_context)
        except Exception as e:
            task_instance.state = TaskState.FAILED
            task_instance.completed_at = utcnow()
            task_instance.error = str(e)
            raise

        task_instance.state = TaskState.COMPLETED
        task_instance.completed_at = utcnow()
        task_instance.result = result
        return result

    async def validate_phase_completion(self, context: PhaseContext) -> bool:
        """Check that every required task of the phase completed.

        Exit conditions and deliverables are evaluated only when a
        ``completion_check`` was configured.

        Args:
            context: The phase context.

        Returns:
            True if the phase may be considered complete.
        """
        phase = context.phase
        log = logger.bind(component="PhaseExecutor", phase_id=phase.id)

        for task in phase.tasks:
            if not task.required:
                continue
            task_instance = context.phase_instance.task_states.get(task.id)
            if task_instance is None or task_instance.state != TaskState.COMPLETED:
                log.warning("required_task_not_completed", task_id=task.id)
                return False

        if phase.exit_conditions:
            log.debug("checking_exit_conditions", conditions=list(phase.exit_conditions))
        if phase.deliverables:
            log.debug("checking_deliverables", deliverables=list(phase.deliverables))

        if self.completion_check is not None:
            verdict = self.completion_check(context)
            if inspect.isawaitable(verdict):
                verdict = await verdict
            if not verdict:
                log.warning("completion_check_failed")
                return False

        return True

    async def rollback_phase(self, context: PhaseContext) -> None:
        """Revert the phase's completed tasks to pending.

        Results and errors of the reverted tasks are cleared; retry counters are kept.

        Args:
            context: The phase context.
        """
        logger.info("rolling_back_phase", phase_id=context.phase.id)

        context.phase_instance.state = PhaseState.ROLLED_BACK
        for task_instance in context.phase_instance.task_states.values():
            if task_instance.state == TaskState.COMPLETED:
                task_instance.state = TaskState.PENDING
                task_instance.result = None
                task_instance.error = None
