"""Tests for the workflow state machine."""

from __future__ import annotations

import asyncio
from uuid import uuid4

import pytest

from litestar_sdlc.config import StateMachineConfig
from litestar_sdlc.core.types import MachineState, PhaseState, TaskState
from litestar_sdlc.exceptions import ErrorCode, StateMachineError, TransitionError
from tests.conftest import GatedTaskExecutor, ScriptedTaskExecutor, make_state_machine


@pytest.mark.unit
class TestStartWorkflow:
    """Tests for StateMachine.start_workflow."""

    async def test_chain_runs_to_completion(self, state_machine, task_executor) -> None:
        """Test single-successor phases are chained automatically."""
        instance = await state_machine.start_workflow("chain")

        assert instance.state == MachineState.COMPLETED
        assert instance.current_phase_id == "release"
        assert instance.completed_at is not None
        assert instance.error is None
        assert instance.phases_in_state(PhaseState.COMPLETED) == ["plan", "build", "release"]
        assert task_executor.calls == ["outline", "compile", "lint", "package", "publish"]

    async def test_instance_is_registered(self, state_machine) -> None:
        """Test the started instance is reachable by id and listed."""
        instance = await state_machine.start_workflow("chain", {"requester": "alice"})

        assert state_machine.get_workflow_instance(instance.id) is instance
        assert state_machine.list_workflow_instances() == [instance]
        assert instance.name == "Chain Workflow"
        assert instance.metadata == {"requester": "alice"}
        assert list(instance.phase_states) == ["plan", "build", "release"]

    async def test_initial_data_is_copied(self, state_machine) -> None:
        """Test the caller's initial data mapping is not shared."""
        initial_data = {"autoApprove": False}
        instance = await state_machine.start_workflow("delivery", initial_data)

        instance.metadata["approved"] = True

        assert initial_data == {"autoApprove": False}

    async def test_unknown_workflow(self, state_machine, persistence) -> None:
        """Test starting an unknown workflow raises WORKFLOW_NOT_FOUND."""
        with pytest.raises(StateMachineError) as exc_info:
            await state_machine.start_workflow("unknown")

        assert exc_info.value.code == ErrorCode.WORKFLOW_NOT_FOUND
        assert exc_info.value.context == {"workflow_id": "unknown"}
        assert state_machine.list_workflow_instances() == []
        assert len(persistence) == 0

    async def test_event_sequence(self, state_machine, event_bus) -> None:
        """Test the workflow level events of a chained run."""
        instance = await state_machine.start_workflow("chain")

        names = [name for name in event_bus.names if not name.startswith("task.") and name != "phase.executing"]
        assert names == [
            "workflow.started",
            "phase.started",
            "phase.completed",
            "transition.requested",
            "transition.completed",
            "phase.started",
            "phase.completed",
            "transition.requested",
            "transition.completed",
            "phase.started",
            "phase.completed",
            "workflow.completed",
        ]
        assert event_bus.payloads("workflow.started") == [{"instance_id": instance.id, "workflow_id": "chain"}]
        assert event_bus.payloads("transition.completed")[0] == {
            "instance_id": instance.id,
            "from_phase_id": "plan",
            "to_phase_id": "build",
        }

    async def test_approval_gate_waits(self, state_machine, event_bus) -> None:
        """Test an approval gated successor is not entered without pre-approval."""
        instance = await state_machine.start_workflow("delivery")

        assert instance.state == MachineState.RUNNING
        assert instance.current_phase_id == "design"
        assert instance.phase_states["design"].state == PhaseState.COMPLETED
        assert instance.phase_states["implementation"].state == PhaseState.PENDING
        assert "transition.requested" not in event_bus.names

    async def test_auto_approve_alone_fails_approved_condition(self, state_machine, event_bus) -> None:
        """Test a refused auto transition leaves the instance running."""
        instance = await state_machine.start_workflow("delivery", {"autoApprove": True})

        assert instance.state == MachineState.RUNNING
        assert instance.current_phase_id == "design"
        assert event_bus.payloads("transition.requested") == [
            {"instance_id": instance.id, "target_phase_id": "implementation"}
        ]
        assert "transition.completed" not in event_bus.names

    async def test_preapproved_delivery_completes(self, state_machine) -> None:
        """Test the delivery workflow completes when approved up front."""
        instance = await state_machine.start_workflow("delivery", {"approved": True})

        assert instance.state == MachineState.COMPLETED
        assert instance.current_phase_id == "deployment"
        assert instance.phases_in_state(PhaseState.COMPLETED) == ["design", "implementation", "deployment"]

    async def test_branching_waits_for_explicit_transition(self, state_machine) -> None:
        """Test several successors wait for an explicit transition."""
        instance = await state_machine.start_workflow("branching")

        assert instance.state == MachineState.RUNNING
        assert instance.current_phase_id == "triage"
        assert instance.phase_states["triage"].state == PhaseState.COMPLETED

    async def test_workflows_run_concurrently(self, state_machine) -> None:
        """Test distinct instances progress independently."""
        instances = await asyncio.gather(*(state_machine.start_workflow("chain") for _ in range(5)))

        assert len({instance.id for instance in instances}) == 5
        assert all(instance.state == MachineState.COMPLETED for instance in instances)


@pytest.mark.unit
class TestRetries:
    """Tests for the phase retry policy."""

    async def test_failing_phase_is_retried(self, registry, event_bus, persistence, config) -> None:
        """Test a failing phase is attempted max_retries + 1 times."""
        task_executor = ScriptedTaskExecutor(event_bus, failing=["deploy-app"])
        state_machine = make_state_machine(
            registry, task_executor, event_bus=event_bus, persistence=persistence, config=config
        )

        instance = await state_machine.start_workflow("delivery", {"approved": True})

        deployment = instance.phase_states["deployment"]
        assert task_executor.calls.count("deploy-app") == 3
        assert deployment.retry_count == 2
        assert deployment.state == PhaseState.FAILED
        assert deployment.task_states["deploy-app"].state == TaskState.FAILED
        assert instance.state == MachineState.FAILED
        assert instance.error == "Phase execution failed due to required task failures"
        assert instance.completed_at is not None

        assert [p["retry_count"] for p in event_bus.payloads("phase.retrying")] == [1, 2]
        assert len(event_bus.payloads("phase.failed")) == 3
        assert [p["phase_id"] for p in event_bus.payloads("phase.started")].count("deployment") == 3
        assert event_bus.payloads("workflow.failed") == [
            {"instance_id": instance.id, "error": "Phase execution failed due to required task failures"}
        ]

    async def test_retries_disabled(self, registry, event_bus) -> None:
        """Test a failure is final when retries are disabled."""
        task_executor = ScriptedTaskExecutor(event_bus, failing=["outline"])
        state_machine = make_state_machine(
            registry,
            task_executor,
            event_bus=event_bus,
            config=StateMachineConfig(enable_retries=False, retry_delay=0),
        )

        instance = await state_machine.start_workflow("chain")

        assert task_executor.calls == ["outline"]
        assert instance.state == MachineState.FAILED
        assert instance.phase_states["plan"].retry_count == 0
        assert "phase.retrying" not in event_bus.names

    async def test_optional_task_failure_does_not_retry(self, registry, event_bus, config) -> None:
        """Test a tolerated optional failure completes the workflow."""
        task_executor = ScriptedTaskExecutor(event_bus, failing=["lint"])
        state_machine = make_state_machine(registry, task_executor, event_bus=event_bus, config=config)

        instance = await state_machine.start_workflow("chain")

        assert instance.state == MachineState.COMPLETED
        assert instance.phase_states["build"].task_states["lint"].state == TaskState.SKIPPED
        assert "phase.retrying" not in event_bus.names


@pytest.mark.unit
class TestPauseResume:
    """Tests for pausing and resuming workflow instances."""

    async def test_pause_and_resume(self, state_machine, event_bus, persistence) -> None:
        """Test resuming re-executes the current phase."""
        instance = await state_machine.start_workflow("delivery")

        await state_machine.pause_workflow(instance.id)
        assert instance.state == MachineState.PAUSED
        assert (await persistence.load(instance.id)).state == MachineState.PAUSED

        await state_machine.resume_workflow(instance.id)

        design_starts = [p for p in event_bus.payloads("phase.started") if p["phase_id"] == "design"]
        assert len(design_starts) == 2
        assert instance.state == MachineState.RUNNING
        assert instance.current_phase_id == "design"
        assert event_bus.payloads("workflow.paused") == [{"instance_id": instance.id}]
        assert event_bus.payloads("workflow.resumed") == [{"instance_id": instance.id}]

    async def test_pause_requires_running(self, state_machine) -> None:
        """Test pausing a completed instance raises INVALID_STATE."""
        instance = await state_machine.start_workflow("chain")

        with pytest.raises(StateMachineError) as exc_info:
            await state_machine.pause_workflow(instance.id)

        assert exc_info.value.code == ErrorCode.INVALID_STATE
        assert exc_info.value.context["current_state"] == "completed"

    async def test_resume_requires_paused(self, state_machine) -> None:
        """Test resuming a running instance raises INVALID_STATE."""
        instance = await state_machine.start_workflow("branching")

        with pytest.raises(StateMachineError) as exc_info:
            await state_machine.resume_workflow(instance.id)

        assert exc_info.value.code == ErrorCode.INVALID_STATE

    @pytest.mark.parametrize("operation", ["pause_workflow", "resume_workflow", "cancel_workflow"])
    async def test_unknown_instance(self, state_machine, operation: str) -> None:
        """Test operations on an unknown instance raise INSTANCE_NOT_FOUND."""
        with pytest.raises(StateMachineError) as exc_info:
            await getattr(state_machine, operation)(uuid4())

        assert exc_info.value.code == ErrorCode.INSTANCE_NOT_FOUND

    async def test_pause_in_flight(self, registry, event_bus, persistence, config) -> None:
        """Test a pause lands while a task is running and resume finishes the run."""
        task_executor = GatedTaskExecutor(event_bus)
        state_machine = make_state_machine(
            registry, task_executor, event_bus=event_bus, persistence=persistence, config=config
        )

        start = asyncio.create_task(state_machine.start_workflow("chain"))
        await task_executor.started.wait()
        (instance,) = state_machine.list_workflow_instances()

        await asyncio.wait_for(state_machine.pause_workflow(instance.id), timeout=1)
        assert instance.state == MachineState.PAUSED
        assert (await persistence.load(instance.id)).state == MachineState.PAUSED
        assert not start.done()

        task_executor.release.set()
        assert await start is instance
        assert instance.state == MachineState.PAUSED
        assert instance.current_phase_id == "plan"
        assert "phase.completed" not in event_bus.names

        await state_machine.resume_workflow(instance.id)

        assert instance.state == MachineState.COMPLETED
        assert task_executor.calls.count("outline") == 2
        assert (await persistence.load(instance.id)).state == MachineState.COMPLETED

    async def test_resume_before_in_flight_task_settles(self, registry, event_bus, config) -> None:
        """Test the run interrupted by a pause does not advance a resumed instance."""
        task_executor = GatedTaskExecutor(event_bus)
        state_machine = make_state_machine(registry, task_executor, event_bus=event_bus, config=config)

        start = asyncio.create_task(state_machine.start_workflow("chain"))
        await task_executor.started.wait()
        (instance,) = state_machine.list_workflow_instances()

        await state_machine.pause_workflow(instance.id)
        resume = asyncio.create_task(state_machine.resume_workflow(instance.id))
        await asyncio.sleep(0)
        task_executor.release.set()
        await asyncio.gather(start, resume)

        assert instance.state == MachineState.COMPLETED
        assert task_executor.calls == ["outline", "outline", "compile", "lint", "package", "publish"]
        assert len(event_bus.payloads("workflow.completed")) == 1
        plan_completions = [p for p in event_bus.payloads("phase.completed") if p["phase_id"] == "plan"]
        assert len(plan_completions) == 1

    async def test_pause_stops_retries(self, registry, event_bus) -> None:
        """Test a pause during the retry delay stops further attempts."""
        task_executor = ScriptedTaskExecutor(event_bus, failing=["outline"])
        state_machine = make_state_machine(
            registry,
            task_executor,
            event_bus=event_bus,
            config=StateMachineConfig(max_retries=3, retry_delay=200),
        )

        start = asyncio.create_task(state_machine.start_workflow("chain"))
        while "phase.retrying" not in event_bus.names:
            await asyncio.sleep(0)
        (instance,) = state_machine.list_workflow_instances()

        await state_machine.pause_workflow(instance.id)
        await start

        assert instance.state == MachineState.PAUSED
        assert task_executor.calls == ["outline"]
        assert instance.phase_states["plan"].retry_count == 1


@pytest.mark.unit
class TestCancelWorkflow:
    """Tests for StateMachine.cancel_workflow."""

    async def test_cancel_with_reason(self, state_machine, event_bus, persistence) -> None:
        """Test cancelling marks the instance failed with the reason."""
        instance = await state_machine.start_workflow("branching")

        await state_machine.cancel_workflow(instance.id, "No longer needed")

        assert instance.state == MachineState.FAILED
        assert instance.error == "No longer needed"
        assert instance.completed_at is not None
        assert (await persistence.load(instance.id)).error == "No longer needed"
        assert event_bus.payloads("workflow.cancelled") == [{"instance_id": instance.id, "reason": "No longer needed"}]

    async def test_cancel_default_reason(self, state_machine) -> None:
        """Test the default cancellation reason."""
        instance = await state_machine.start_workflow("branching")

        await state_machine.cancel_workflow(instance.id)

        assert instance.error == "Workflow cancelled"

    async def test_cancel_paused_instance(self, state_machine) -> None:
        """Test a paused instance can be cancelled."""
        instance = await state_machine.start_workflow("branching")
        await state_machine.pause_workflow(instance.id)

        await state_machine.cancel_workflow(instance.id)

        assert instance.state == MachineState.FAILED

    async def test_cancel_terminal_instance(self, state_machine) -> None:
        """Test cancelling twice raises INVALID_STATE."""
        instance = await state_machine.start_workflow("branching")
        await state_machine.cancel_workflow(instance.id)

        with pytest.raises(StateMachineError) as exc_info:
            await state_machine.cancel_workflow(instance.id)

        assert exc_info.value.code == ErrorCode.INVALID_STATE
        assert instance.error == "Workflow cancelled"

    async def test_cancel_in_flight(self, registry, event_bus, persistence, config) -> None:
        """Test the outcome of a phase in flight is ignored after cancellation."""
        task_executor = GatedTaskExecutor(event_bus)
        state_machine = make_state_machine(
            registry, task_executor, event_bus=event_bus, persistence=persistence, config=config
        )

        start = asyncio.create_task(state_machine.start_workflow("chain"))
        await task_executor.started.wait()
        (instance,) = state_machine.list_workflow_instances()

        await state_machine.cancel_workflow(instance.id, "Stop")
        task_executor.release.set()
        assert await start is instance

        assert instance.state == MachineState.FAILED
        assert instance.error == "Stop"
        assert instance.current_phase_id == "plan"
        assert instance.phase_states["build"].state == PhaseState.PENDING
        assert "workflow.completed" not in event_bus.names
        assert "transition.requested" not in event_bus.names
        assert (await persistence.load(instance.id)).state == MachineState.FAILED

    async def test_cancel_stops_later_frontiers(self, registry, event_bus, persistence, config) -> None:
        """Test no task is dispatched after cancellation, only the one in flight settles."""
        task_executor = GatedTaskExecutor(event_bus)
        state_machine = make_state_machine(
            registry, task_executor, event_bus=event_bus, persistence=persistence, config=config
        )

        start = asyncio.create_task(state_machine.start_workflow("delivery"))
        await task_executor.started.wait()
        (instance,) = state_machine.list_workflow_instances()

        await state_machine.cancel_workflow(instance.id, "Stop")
        task_executor.release.set()
        await start

        design = instance.phase_states["design"]
        assert task_executor.calls == ["create-design"]
        assert design.task_states["review-design"].state == TaskState.PENDING
        assert [p["task_id"] for p in event_bus.payloads("task.started")] == ["create-design"]
        assert instance.state == MachineState.FAILED
        assert instance.error == "Stop"
        assert (await persistence.load(instance.id)).state == MachineState.FAILED


@pytest.mark.unit
class TestTransitionToPhase:
    """Tests for explicit phase transitions."""

    async def test_explicit_transition(self, state_machine, event_bus) -> None:
        """Test choosing a branch completes the workflow."""
        instance = await state_machine.start_workflow("branching")

        await state_machine.transition_to_phase(instance.id, "hotfix")

        assert instance.state == MachineState.COMPLETED
        assert instance.current_phase_id == "hotfix"
        assert instance.phase_states["feature"].state == PhaseState.PENDING
        assert event_bus.payloads("transition.completed") == [
            {"instance_id": instance.id, "from_phase_id": "triage", "to_phase_id": "hotfix"}
        ]

    async def test_transition_without_approval(self, state_machine) -> None:
        """Test an approval gated transition is refused and nothing changes."""
        instance = await state_machine.start_workflow("delivery")

        with pytest.raises(TransitionError) as exc_info:
            await state_machine.transition_to_phase(instance.id, "implementation")

        assert str(exc_info.value) == "Transition validation failed"
        assert exc_info.value.from_phase_id == "design"
        assert exc_info.value.to_phase_id == "implementation"
        assert instance.state == MachineState.RUNNING
        assert instance.current_phase_id == "design"
        assert instance.phase_states["implementation"].state == PhaseState.PENDING

    async def test_transition_with_approval(self, state_machine) -> None:
        """Test an approved transition executes the rest of the workflow."""
        instance = await state_machine.start_workflow("delivery")

        await state_machine.transition_to_phase(instance.id, "implementation", {"approved": True})

        assert instance.state == MachineState.COMPLETED
        assert instance.current_phase_id == "deployment"

    async def test_invalid_phase_reference(self, state_machine) -> None:
        """Test transitioning to an unknown phase."""
        instance = await state_machine.start_workflow("branching")

        with pytest.raises(TransitionError, match="Invalid phase reference"):
            await state_machine.transition_to_phase(instance.id, "nowhere")

    async def test_no_valid_transition(self, state_machine) -> None:
        """Test transitioning along an edge that is not defined."""
        instance = await state_machine.start_workflow("branching")

        with pytest.raises(TransitionError, match="No valid transition found"):
            await state_machine.transition_to_phase(instance.id, "triage")

        assert instance.current_phase_id == "triage"

    async def test_transition_requires_running(self, state_machine) -> None:
        """Test a paused instance cannot be transitioned."""
        instance = await state_machine.start_workflow("branching")
        await state_machine.pause_workflow(instance.id)

        with pytest.raises(StateMachineError) as exc_info:
            await state_machine.transition_to_phase(instance.id, "hotfix")

        assert exc_info.value.code == ErrorCode.INVALID_STATE
        assert instance.current_phase_id == "triage"

    async def test_missing_definition(self, state_machine, registry) -> None:
        """Test a definition removed after start raises WORKFLOW_NOT_FOUND."""
        instance = await state_machine.start_workflow("branching")
        registry.unregister("branching")

        with pytest.raises(StateMachineError) as exc_info:
            await state_machine.transition_to_phase(instance.id, "hotfix")

        assert exc_info.value.code == ErrorCode.WORKFLOW_NOT_FOUND


@pytest.mark.unit
class TestRollbackPhase:
    """Tests for StateMachine.rollback_phase."""

    async def test_rollback(self, state_machine, event_bus) -> None:
        """Test rolling back reverts the phase's completed tasks."""
        instance = await state_machine.start_workflow("chain")

        await state_machine.rollback_phase(instance.id, "build")

        build = instance.phase_states["build"]
        assert build.state == PhaseState.ROLLED_BACK
        assert {task.state for task in build.task_states.values()} == {TaskState.PENDING}
        assert event_bus.payloads("phase.rolled_back") == [{"instance_id": instance.id, "phase_id": "build"}]

    async def test_rollback_disabled(self, registry, task_executor) -> None:
        """Test rollback raises INVALID_STATE when disabled."""
        state_machine = make_state_machine(
            registry, task_executor, config=StateMachineConfig(enable_rollback=False, retry_delay=0)
        )
        instance = await state_machine.start_workflow("chain")

        with pytest.raises(StateMachineError) as exc_info:
            await state_machine.rollback_phase(instance.id, "build")

        assert exc_info.value.code == ErrorCode.INVALID_STATE
        assert instance.phase_states["build"].state == PhaseState.COMPLETED

    async def test_rollback_unknown_phase(self, state_machine) -> None:
        """Test rolling back an unknown phase raises PHASE_NOT_FOUND."""
        instance = await state_machine.start_workflow("chain")

        with pytest.raises(StateMachineError) as exc_info:
            await state_machine.rollback_phase(instance.id, "nowhere")

        assert exc_info.value.code == ErrorCode.PHASE_NOT_FOUND


@pytest.mark.unit
class TestInstanceQueries:
    """Tests for listing and loading workflow instances."""

    async def test_list_filters(self, state_machine) -> None:
        """Test filtering by state and workflow id."""
        chain = await state_machine.start_workflow("chain")
        branching = await state_machine.start_workflow("branching")

        assert state_machine.list_workflow_instances(state=MachineState.COMPLETED) == [chain]
        assert state_machine.list_workflow_instances(state=MachineState.RUNNING) == [branching]
        assert state_machine.list_workflow_instances(workflow_id="branching") == [branching]
        assert state_machine.list_workflow_instances(MachineState.FAILED, "chain") == []

    async def test_get_unknown_instance(self, state_machine) -> None:
        """Test unknown ids return None."""
        assert state_machine.get_workflow_instance(uuid4()) is None

    async def test_load_from_store(self, registry, task_executor, event_bus, persistence, config) -> None:
        """Test a second state machine restores instances from a shared store."""
        first = make_state_machine(registry, task_executor, event_bus=event_bus, persistence=persistence, config=config)
        instance = await first.start_workflow("branching")

        second = make_state_machine(registry, task_executor, event_bus=event_bus, persistence=persistence, config=config)
        assert second.get_workflow_instance(instance.id) is None

        restored = await second.load_workflow_instance(instance.id)

        assert restored == instance
        assert restored is not instance
        assert second.get_workflow_instance(instance.id) is restored

        await second.transition_to_phase(instance.id, "feature")
        assert restored.state == MachineState.COMPLETED
        assert instance.state == MachineState.RUNNING

    async def test_load_unknown_instance(self, state_machine) -> None:
        """Test loading an id the store does not know."""
        assert await state_machine.load_workflow_instance(uuid4()) is None


@pytest.mark.unit
class TestPersistenceSettings:
    """Tests for persistence wiring."""

    async def test_store_receives_snapshots(self, state_machine, persistence) -> None:
        """Test the store holds the final instance state."""
        instance = await state_machine.start_workflow("chain")

        stored = await persistence.load(instance.id)

        assert stored == instance
        assert stored is not instance

    async def test_persistence_disabled(self, registry, task_executor, persistence) -> None:
        """Test nothing is stored when persistence is disabled."""
        state_machine = make_state_machine(
            registry,
            task_executor,
            persistence=persistence,
            config=StateMachineConfig(enable_persistence=False, retry_delay=0),
        )

        instance = await state_machine.start_workflow("chain")

        assert instance.state == MachineState.COMPLETED
        assert not state_machine.persistence_enabled
        assert len(persistence) == 0

    async def test_without_store(self, registry, task_executor) -> None:
        """Test the state machine runs without a store."""
        state_machine = make_state_machine(registry, task_executor)

        instance = await state_machine.start_workflow("chain")

        assert instance.state == MachineState.COMPLETED
        assert await state_machine.load_workflow_instance(uuid4()) is None


@pytest.mark.unit
class TestBuildStateMachine:
    """Tests for build_state_machine."""

    async def test_defaults(self, registry) -> None:
        """Test default collaborators are wired together."""
        from litestar_sdlc.core.events import EventBus
        from litestar_sdlc.engine.state_machine import build_state_machine
        from litestar_sdlc.persistence.memory import InMemoryPersistence

        state_machine = build_state_machine(registry, time_scale=0)

        assert isinstance(state_machine.persistence, InMemoryPersistence)
        assert isinstance(state_machine.event_bus, EventBus)
        assert state_machine.phase_executor.event_bus is state_machine.event_bus
        assert state_machine.phase_executor.task_executor.time_scale == 0

        instance = await state_machine.start_workflow("chain")
        assert instance.state == MachineState.COMPLETED

    async def test_shared_event_bus(self, registry, event_bus) -> None:
        """Test a supplied event bus reaches every component."""
        from litestar_sdlc.engine.state_machine import build_state_machine

        state_machine = build_state_machine(registry, event_bus=event_bus, time_scale=0)

        await state_machine.start_workflow("delivery")

        assert "task.executing" in event_bus.names
        assert "transition.approval_requested" not in event_bus.names
        assert "workflow.started" in event_bus.names
