"""Tests for the execution service and the run dispatcher.

Runs go through the SQL stores on a temporary SQLite database, with the
dispatcher executing them as background tasks.
"""

import asyncio

import pytest

from nodeflow.api.deps import build_run_dispatcher
from nodeflow.core.orchestrator import CANCELED_STEP_ERROR
from nodeflow.models.execution import ExecutionStatus, StepStatus
from nodeflow.services.execution_service import (
    ExecutionAccessDeniedError,
    ExecutionNotFoundError,
    ExecutionService,
    ExecutionServiceError,
)
from nodeflow.services.workflow_service import WorkflowAccessDeniedError, WorkflowService
from tests.fakes import make_effectors


def make_service(db_session, dispatcher) -> ExecutionService:
    return ExecutionService(db_session, WorkflowService(db_session), dispatcher)


async def wait_for_llm_calls(effectors, count: int, timeout: float = 5.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while len(effectors.llm.calls) < count:
        if loop.time() > deadline:
            raise AssertionError("LLM was never called")
        await asyncio.sleep(0.01)


class TestTriggerRun:
    """Tests for queuing and running workflows."""

    @pytest.mark.asyncio
    async def test_full_run(self, db_session, dispatcher, test_workflow, user_id):
        """Test triggering and finishing a full run."""
        service = make_service(db_session, dispatcher)

        response = await service.trigger_run(test_workflow.id, user_id)
        await dispatcher.wait(response.executionId)

        assert response.success
        assert response.scope == "full"
        assert response.triggerRunId.startswith("run_")

        execution = await service.get(response.executionId, user_id)
        assert execution.status == ExecutionStatus.COMPLETED
        assert execution.trigger_id == response.triggerRunId
        assert execution.duration_ms is not None
        assert [s.node_id for s in execution.steps] == ["text-1", "llm-1", "out-1"]
        assert all(s.status == StepStatus.COMPLETED for s in execution.steps)
        assert execution.steps[-1].output == "echo: Describe a cat"

    @pytest.mark.asyncio
    async def test_partial_run(self, db_session, dispatcher, test_workflow, user_id):
        """Test a single-node run."""
        service = make_service(db_session, dispatcher)

        response = await service.trigger_run(test_workflow.id, user_id, ["llm-1"])
        await dispatcher.wait(response.executionId)

        assert response.scope == "single:llm-1"
        execution = await service.get(response.executionId, user_id)
        assert execution.status == ExecutionStatus.COMPLETED
        assert {s.node_id for s in execution.steps} == {"text-1", "llm-1"}

    @pytest.mark.asyncio
    async def test_multi_target_scope(self, db_session, dispatcher, test_workflow, user_id):
        """Test the scope label for several targets."""
        service = make_service(db_session, dispatcher)

        response = await service.trigger_run(test_workflow.id, user_id, ["llm-1", "out-1"])
        await dispatcher.wait(response.executionId)

        assert response.scope == "partial:2"

    @pytest.mark.asyncio
    async def test_failed_node_fails_execution(self, db_session, session_maker, registry, test_workflow, user_id):
        """Test that a failing node fails the execution."""
        dispatcher = build_run_dispatcher(
            session_maker,
            effectors=make_effectors(fail_on="cat"),
            registry=registry,
        )
        service = make_service(db_session, dispatcher)

        response = await service.trigger_run(test_workflow.id, user_id)
        await dispatcher.wait(response.executionId)

        execution = await service.get(response.executionId, user_id)
        assert execution.status == ExecutionStatus.FAILED
        assert execution.error == "Node llm-1 failed: LLM refused prompt: Describe a cat"
        assert [s.status for s in execution.steps] == [StepStatus.COMPLETED, StepStatus.FAILED]

    @pytest.mark.asyncio
    async def test_trigger_requires_ownership(self, db_session, dispatcher, test_workflow, other_user_id):
        """Test triggering another user's workflow."""
        service = make_service(db_session, dispatcher)

        with pytest.raises(WorkflowAccessDeniedError):
            await service.trigger_run(test_workflow.id, other_user_id)


class TestExecutionQueries:
    """Tests for reading run history."""

    @pytest.mark.asyncio
    async def test_get_access_checks(self, db_session, dispatcher, test_workflow, user_id, other_user_id):
        """Test access checks when reading an execution."""
        service = make_service(db_session, dispatcher)
        response = await service.trigger_run(test_workflow.id, user_id)
        await dispatcher.wait(response.executionId)

        with pytest.raises(ExecutionNotFoundError):
            await service.get("missing", user_id)
        with pytest.raises(ExecutionAccessDeniedError):
            await service.get(response.executionId, other_user_id)

    @pytest.mark.asyncio
    async def test_list_for_workflow(self, db_session, dispatcher, test_workflow, user_id):
        """Test listing run history newest first."""
        service = make_service(db_session, dispatcher)
        first = await service.trigger_run(test_workflow.id, user_id)
        await dispatcher.wait(first.executionId)
        second = await service.trigger_run(test_workflow.id, user_id, ["text-1"])
        await dispatcher.wait(second.executionId)

        history = await service.list_for_workflow(test_workflow.id, user_id)

        assert [e.id for e in history] == [second.executionId, first.executionId]
        assert len(history[0].steps) == 1
        assert len(history[1].steps) == 3

        page = await service.list_for_workflow(test_workflow.id, user_id, limit=1, offset=1)
        assert [e.id for e in page] == [first.executionId]

    @pytest.mark.asyncio
    async def test_stream_ends_with_terminal_snapshot(self, db_session, dispatcher, test_workflow, user_id):
        """Test that the stream ends with a terminal snapshot."""
        service = make_service(db_session, dispatcher)
        response = await service.trigger_run(test_workflow.id, user_id)

        snapshots = [
            snapshot
            async for snapshot in service.stream(response.executionId, user_id, poll_interval=0.01)
        ]

        assert snapshots
        assert snapshots[-1].status == ExecutionStatus.COMPLETED
        assert all(not s.status.is_terminal for s in snapshots[:-1])
        # consecutive snapshots always differ
        dumps = [s.model_dump_json() for s in snapshots]
        assert all(a != b for a, b in zip(dumps, dumps[1:]))


class TestCancel:
    """Tests for canceling runs."""

    @pytest.mark.asyncio
    async def test_cancel_running_execution(self, db_session, session_maker, registry, test_workflow, user_id):
        """Test canceling a running execution."""
        gate = asyncio.Event()
        effectors = make_effectors(gate=gate)
        dispatcher = build_run_dispatcher(session_maker, effectors=effectors, registry=registry)
        service = make_service(db_session, dispatcher)

        response = await service.trigger_run(test_workflow.id, user_id)
        await wait_for_llm_calls(effectors, 1)

        execution = await service.cancel(response.executionId, user_id)

        assert execution.status == ExecutionStatus.CANCELED
        assert not dispatcher.is_running(response.executionId)
        steps = {s.node_id: s for s in execution.steps}
        assert steps["text-1"].status == StepStatus.COMPLETED
        assert steps["llm-1"].status == StepStatus.FAILED
        assert steps["llm-1"].error == CANCELED_STEP_ERROR
        assert "out-1" not in steps

    @pytest.mark.asyncio
    async def test_cancel_finished_execution_rejected(self, db_session, dispatcher, test_workflow, user_id):
        """Test canceling a finished execution."""
        service = make_service(db_session, dispatcher)
        response = await service.trigger_run(test_workflow.id, user_id)
        await dispatcher.wait(response.executionId)

        with pytest.raises(ExecutionServiceError) as exc_info:
            await service.cancel(response.executionId, user_id)

        assert str(exc_info.value) == "Cannot cancel: status is COMPLETED"

    @pytest.mark.asyncio
    async def test_shutdown_cancels_active_runs(self, db_session, session_maker, registry, test_workflow, user_id):
        """Test that shutdown cancels active runs."""
        effectors = make_effectors(gate=asyncio.Event())
        dispatcher = build_run_dispatcher(session_maker, effectors=effectors, registry=registry)
        service = make_service(db_session, dispatcher)

        response = await service.trigger_run(test_workflow.id, user_id)
        await wait_for_llm_calls(effectors, 1)

        await dispatcher.shutdown()

        execution = await service.get(response.executionId, user_id)
        assert execution.status == ExecutionStatus.CANCELED
