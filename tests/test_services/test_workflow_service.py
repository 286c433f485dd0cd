"""Tests for the workflow service."""

import pytest
from sqlalchemy import select

from nodeflow.models.execution import Execution, ExecutionStatus, ExecutionStep, StepStatus
from nodeflow.models.workflow import Workflow, WorkflowCreate, WorkflowGraph, WorkflowUpdate
from nodeflow.services.workflow_service import (
    WorkflowAccessDeniedError,
    WorkflowNotFoundError,
    WorkflowService,
    WorkflowValidationError,
)

CHAIN = {
    "nodes": [
        {"id": "a", "type": "textNode", "data": {"text": "x"}},
        {"id": "b", "type": "outputNode", "data": {}},
    ],
    "edges": [{"source": "a", "target": "b", "sourceHandle": "text", "targetHandle": "input"}],
}

CYCLE = {
    "nodes": [
        {"id": "a", "type": "runAnyLLM", "data": {}},
        {"id": "b", "type": "runAnyLLM", "data": {}},
    ],
    "edges": [
        {"source": "a", "target": "b"},
        {"source": "b", "target": "a"},
    ],
}


class TestWorkflowService:
    """Tests for WorkflowService."""

    @pytest.mark.asyncio
    async def test_create_and_get(self, db_session, user_id):
        """Test creating and reading a workflow."""
        service = WorkflowService(db_session)

        created = await service.create(user_id, WorkflowCreate(name="Chain", graph=CHAIN))
        fetched = await service.get(created.id, user_id)

        assert fetched.name == "Chain"
        assert fetched.user_id == user_id
        assert [n.id for n in fetched.graph.nodes] == ["a", "b"]
        assert fetched.graph.edges[0].targetHandle == "input"

    @pytest.mark.asyncio
    async def test_create_rejects_cycle(self, db_session, user_id):
        """Test that a cyclic graph is rejected."""
        service = WorkflowService(db_session)

        with pytest.raises(WorkflowValidationError) as exc_info:
            await service.create(user_id, WorkflowCreate(name="Loop", graph=CYCLE))

        assert any(e.startswith("Cycle detected") for e in exc_info.value.errors)
        assert await service.list_all(user_id) == []

    @pytest.mark.asyncio
    async def test_create_rejects_dangling_edge(self, db_session, user_id):
        """Test that an edge to a missing node is rejected."""
        service = WorkflowService(db_session)
        graph = {"nodes": [{"id": "a", "type": "textNode"}], "edges": [{"source": "a", "target": "z"}]}

        with pytest.raises(WorkflowValidationError) as exc_info:
            await service.create(user_id, WorkflowCreate(name="Dangling", graph=graph))

        assert exc_info.value.errors == ["Edge references unknown target node: z"]

    @pytest.mark.asyncio
    async def test_get_not_found(self, db_session, user_id):
        """Test getting a missing workflow."""
        with pytest.raises(WorkflowNotFoundError):
            await WorkflowService(db_session).get("missing", user_id)

    @pytest.mark.asyncio
    async def test_get_other_users_workflow(self, db_session, test_workflow, other_user_id):
        """Test getting another user's workflow."""
        with pytest.raises(WorkflowAccessDeniedError):
            await WorkflowService(db_session).get(test_workflow.id, other_user_id)

    @pytest.mark.asyncio
    async def test_list_is_user_scoped_and_paginated(self, db_session, user_id, other_user_id):
        """Test that listing is per user and paginated."""
        service = WorkflowService(db_session)
        for i in range(3):
            await service.create(user_id, WorkflowCreate(name=f"wf-{i}"))
        await service.create(other_user_id, WorkflowCreate(name="theirs"))

        mine = await service.list_all(user_id)
        page = await service.list_all(user_id, limit=2, offset=2)

        assert len(mine) == 3
        assert all(w.user_id == user_id for w in mine)
        assert len(page) == 1

    @pytest.mark.asyncio
    async def test_update_replaces_graph(self, db_session, test_workflow, user_id):
        """Test that an update replaces the graph."""
        service = WorkflowService(db_session)

        updated = await service.update(
            test_workflow.id,
            user_id,
            WorkflowUpdate(name="Renamed", graph=WorkflowGraph.model_validate(CHAIN)),
        )

        assert updated.name == "Renamed"
        assert updated.description == "A test workflow"
        assert [n.id for n in updated.graph.nodes] == ["a", "b"]

    @pytest.mark.asyncio
    async def test_update_rejects_cycle(self, db_session, test_workflow, user_id):
        """Test that an update cannot introduce a cycle."""
        service = WorkflowService(db_session)

        with pytest.raises(WorkflowValidationError):
            await service.update(
                test_workflow.id,
                user_id,
                WorkflowUpdate(graph=WorkflowGraph.model_validate(CYCLE)),
            )

        stored = await service.get(test_workflow.id, user_id)
        assert len(stored.graph.nodes) == 3

    @pytest.mark.asyncio
    async def test_delete_removes_run_history(self, db_session, test_workflow, user_id):
        """Test that delete removes executions and steps."""
        execution = Execution(
            workflow_id=test_workflow.id,
            user_id=user_id,
            status=ExecutionStatus.COMPLETED,
        )
        db_session.add(execution)
        await db_session.commit()
        db_session.add(
            ExecutionStep(
                execution_id=execution.id,
                node_id="text-1",
                status=StepStatus.COMPLETED,
            )
        )
        await db_session.commit()

        await WorkflowService(db_session).delete(test_workflow.id, user_id)

        assert (await db_session.execute(select(Workflow))).scalars().all() == []
        assert (await db_session.execute(select(Execution))).scalars().all() == []
        assert (await db_session.execute(select(ExecutionStep))).scalars().all() == []

    @pytest.mark.asyncio
    async def test_delete_other_users_workflow(self, db_session, test_workflow, other_user_id):
        """Test deleting another user's workflow."""
        with pytest.raises(WorkflowAccessDeniedError):
            await WorkflowService(db_session).delete(test_workflow.id, other_user_id)
