"""Execution service.

Handles run triggering, cancellation and execution history.
"""

import asyncio
from typing import AsyncGenerator

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from nodeflow.config import settings
from nodeflow.models.execution import (
    Execution,
    ExecutionRead,
    ExecutionStatus,
    ExecutionStep,
    ExecutionStepRead,
    RunRequest,
    RunTriggerResponse,
    build_scope,
)
from nodeflow.services.run_dispatcher import RunDispatcher
from nodeflow.services.workflow_service import WorkflowService

logger = structlog.get_logger()


class ExecutionServiceError(Exception):
    """Error in execution service operations."""

    pass


class ExecutionNotFoundError(ExecutionServiceError):
    """Execution not found."""

    pass


class ExecutionAccessDeniedError(ExecutionServiceError):
    """User doesn't have access to execution."""

    pass


class ExecutionService:
    """Service for managing workflow executions.

    Handles:
    - Queuing runs (full or partial) and handing them to the dispatcher
    - Reading executions together with their steps
    - Listing run history per workflow
    - Cancelling active runs
    - Streaming snapshots until a run finishes

    Example usage:
        service = ExecutionService(session, workflow_service, dispatcher)

        response = await service.trigger_run(
            workflow_id="workflow-456",
            user_id="user-123",
            selected_node_ids=["llm-1"],
        )

        execution = await service.get(response.executionId, "user-123")
    """

    def __init__(
        self,
        session: AsyncSession,
        workflow_service: WorkflowService,
        dispatcher: RunDispatcher,
    ) -> None:
        """Initialize execution service.

        Args:
            session: Async database session
            workflow_service: Workflow service instance
            dispatcher: Background run dispatcher
        """
        self._session = session
        self._workflow_service = workflow_service
        self._dispatcher = dispatcher

    async def trigger_run(
        self,
        workflow_id: str,
        user_id: str,
        selected_node_ids: list[str] | None = None,
    ) -> RunTriggerResponse:
        """Queue a run of a workflow and dispatch it.

        Args:
            workflow_id: Workflow to run
            user_id: User triggering the run
            selected_node_ids: Target nodes of a partial run (None for full)

        Returns:
            Execution id, trigger id and scope of the queued run

        Raises:
            WorkflowNotFoundError: If workflow doesn't exist
            WorkflowAccessDeniedError: If user doesn't own workflow
        """
        await self._workflow_service.get_entity(workflow_id, user_id)

        scope = build_scope(selected_node_ids)
        execution = Execution(
            workflow_id=workflow_id,
            user_id=user_id,
            status=ExecutionStatus.QUEUED,
            scope=scope,
        )
        self._session.add(execution)
        await self._session.commit()
        await self._session.refresh(execution)

        trigger_id = self._dispatcher.dispatch(
            RunRequest(
                execution_id=execution.id,
                workflow_id=workflow_id,
                selected_node_ids=selected_node_ids or None,
            )
        )

        # Only the changed column is written, so this cannot clobber the
        # status the background run may already have persisted.
        execution.trigger_id = trigger_id
        await self._session.commit()

        logger.info(
            "execution_queued",
            execution_id=execution.id,
            workflow_id=workflow_id,
            user_id=user_id,
            scope=scope,
        )

        return RunTriggerResponse(
            success=True,
            executionId=execution.id,
            triggerRunId=trigger_id,
            scope=scope,
        )

    async def get(
        self,
        execution_id: str,
        user_id: str,
    ) -> ExecutionRead:
        """Get an execution with its steps.

        Raises:
            ExecutionNotFoundError: If execution doesn't exist
            ExecutionAccessDeniedError: If user doesn't own execution
        """
        execution = await self._get_and_verify(execution_id, user_id)
        steps = await self._list_steps([execution.id])
        return self._to_read(execution, steps.get(execution.id, []))

    async def list_for_workflow(
        self,
        workflow_id: str,
        user_id: str,
        limit: int = 50,
        offset: int = 0,
    ) -> list[ExecutionRead]:
        """List a workflow's run history, newest first.

        Raises:
            WorkflowNotFoundError: If workflow doesn't exist
            WorkflowAccessDeniedError: If user doesn't own workflow
        """
        await self._workflow_service.get_entity(workflow_id, user_id)

        query = (
            select(Execution)
            .where(Execution.workflow_id == workflow_id)
            .order_by(Execution.created_at.desc())
            .limit(limit)
            .offset(offset)
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(query)
        executions = result.scalars().all()

        steps = await self._list_steps([e.id for e in executions])
        return [self._to_read(e, steps.get(e.id, [])) for e in executions]

    async def cancel(
        self,
        execution_id: str,
        user_id: str,
    ) -> ExecutionRead:
        """Cancel a queued or running execution.

        Raises:
            ExecutionNotFoundError: If execution doesn't exist
            ExecutionAccessDeniedError: If user doesn't own execution
            ExecutionServiceError: If execution already finished
        """
        execution = await self._get_and_verify(execution_id, user_id)
        current = ExecutionStatus(execution.status)

        if current.is_terminal:
            raise ExecutionServiceError(f"Cannot cancel: status is {current.value}")

        # End the read transaction before the dispatcher writes elsewhere
        await self._session.commit()
        await self._dispatcher.cancel(execution_id)

        logger.info(
            "execution_cancel_requested",
            execution_id=execution_id,
            user_id=user_id,
            previous_status=current.value,
        )

        return await self.get(execution_id, user_id)

    async def stream(
        self,
        execution_id: str,
        user_id: str,
        poll_interval: float | None = None,
    ) -> AsyncGenerator[ExecutionRead, None]:
        """Yield execution snapshots whenever they change, until terminal.

        Raises:
            ExecutionNotFoundError: If execution doesn't exist
            ExecutionAccessDeniedError: If user doesn't own execution
        """
        interval = poll_interval if poll_interval is not None else settings.stream_poll_interval
        previous: str | None = None

        while True:
            snapshot = await self.get(execution_id, user_id)
            await self._session.commit()

            serialized = snapshot.model_dump_json()
            if serialized != previous:
                previous = serialized
                yield snapshot

            if snapshot.status.is_terminal:
                return
            await asyncio.sleep(interval)

    async def _get_and_verify(
        self,
        execution_id: str,
        user_id: str,
    ) -> Execution:
        """Get execution and verify ownership.

        Raises:
            ExecutionNotFoundError: If not found
            ExecutionAccessDeniedError: If wrong owner
        """
        query = (
            select(Execution)
            .where(Execution.id == execution_id)
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(query)
        execution = result.scalar_one_or_none()

        if execution is None:
            raise ExecutionNotFoundError(f"Execution '{execution_id}' not found")

        if execution.user_id != user_id:
            logger.warning(
                "execution_access_denied",
                execution_id=execution_id,
                requested_by=user_id,
                owner=execution.user_id,
            )
            raise ExecutionAccessDeniedError("Access denied to execution")

        return execution

    async def _list_steps(self, execution_ids: list[str]) -> dict[str, list[ExecutionStep]]:
        if not execution_ids:
            return {}

        query = (
            select(ExecutionStep)
            .where(ExecutionStep.execution_id.in_(execution_ids))
            .order_by(ExecutionStep.started_at)
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(query)

        grouped: dict[str, list[ExecutionStep]] = {}
        for step in result.scalars().all():
            grouped.setdefault(step.execution_id, []).append(step)
        return grouped

    def _to_read(self, execution: Execution, steps: list[ExecutionStep]) -> ExecutionRead:
        """Convert execution entity to read schema."""
        return ExecutionRead(
            id=execution.id,
            workflow_id=execution.workflow_id,
            user_id=execution.user_id,
            status=execution.status,
            scope=execution.scope,
            error=execution.error,
            trigger_id=execution.trigger_id,
            created_at=execution.created_at,
            started_at=execution.started_at,
            ended_at=execution.ended_at,
            duration_ms=execution.duration_ms,
            steps=[
                ExecutionStepRead(
                    id=step.id,
                    execution_id=step.execution_id,
                    node_id=step.node_id,
                    node_type=step.node_type,
                    status=step.status,
                    output=step.get_output(),
                    error=step.error,
                    logs=step.get_logs(),
                    started_at=step.started_at,
                    ended_at=step.ended_at,
                )
                for step in steps
            ],
        )
