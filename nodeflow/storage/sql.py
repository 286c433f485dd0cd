"""SQLModel-backed stores.

Each operation opens its own session from the session maker and commits
before returning, so node tasks running concurrently in one level never
share a session.
"""

from typing import Any

import structlog
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import sessionmaker

from nodeflow.models.execution import (
    Execution,
    ExecutionStatus,
    ExecutionStep,
    StepStatus,
    utc_now,
)
from nodeflow.models.workflow import Workflow, WorkflowGraph
from nodeflow.storage.base import (
    ExecutionStore,
    GraphStore,
    RecordNotFoundError,
    StepAlreadyExistsError,
)

logger = structlog.get_logger()


class SqlGraphStore(GraphStore):
    """Loads graphs from the ``workflow`` table."""

    def __init__(self, session_maker: sessionmaker) -> None:
        self._session_maker = session_maker

    async def load_graph(self, workflow_id: str) -> WorkflowGraph | None:
        async with self._session_maker() as session:
            workflow = await session.get(Workflow, workflow_id)
            if workflow is None:
                return None
            return workflow.get_graph()


class SqlExecutionStore(ExecutionStore):
    """Stores executions and steps in the ``execution`` tables.

    Example usage:
        store = SqlExecutionStore(session_maker)
        execution = await store.create_execution(workflow_id, user_id)
        await store.transition_execution(execution.id, ExecutionStatus.RUNNING)
    """

    def __init__(self, session_maker: sessionmaker) -> None:
        """Initialize store.

        Args:
            session_maker: Async session maker with ``expire_on_commit=False``
        """
        self._session_maker = session_maker

    async def create_execution(
        self,
        workflow_id: str,
        user_id: str,
        scope: str = "full",
    ) -> Execution:
        execution = Execution(workflow_id=workflow_id, user_id=user_id, scope=scope)
        async with self._session_maker() as session:
            session.add(execution)
            await session.commit()
            await session.refresh(execution)
        return execution

    async def get_execution(self, execution_id: str) -> Execution | None:
        async with self._session_maker() as session:
            return await session.get(Execution, execution_id)

    async def transition_execution(
        self,
        execution_id: str,
        status: ExecutionStatus,
        error: str | None = None,
    ) -> Execution:
        async with self._session_maker() as session:
            execution = await self._get(session, execution_id)
            execution.apply_status(status, error)
            await session.commit()
            await session.refresh(execution)
        return execution

    async def create_step(
        self,
        execution_id: str,
        node_id: str,
        node_type: str | None,
        logs: list[str] | None = None,
    ) -> ExecutionStep:
        step = ExecutionStep(
            execution_id=execution_id,
            node_id=node_id,
            node_type=node_type,
            status=StepStatus.RUNNING,
            started_at=utc_now(),
        )
        step.set_logs(logs or [])

        async with self._session_maker() as session:
            session.add(step)
            try:
                await session.commit()
            except IntegrityError as e:
                await session.rollback()
                logger.warning(
                    "execution_step_duplicate",
                    execution_id=execution_id,
                    node_id=node_id,
                )
                raise StepAlreadyExistsError(execution_id, node_id) from e
            await session.refresh(step)
        return step

    async def complete_step(
        self,
        step_id: str,
        output: Any,
        logs: list[str] | None = None,
    ) -> ExecutionStep:
        async with self._session_maker() as session:
            step = await self._get_step(session, step_id)
            step.mark_completed(output)
            if logs is not None:
                step.set_logs(logs)
            await session.commit()
            await session.refresh(step)
        return step

    async def fail_step(
        self,
        step_id: str,
        error: str,
        logs: list[str] | None = None,
    ) -> ExecutionStep:
        async with self._session_maker() as session:
            step = await self._get_step(session, step_id)
            step.mark_failed(error)
            if logs is not None:
                step.set_logs(logs)
            await session.commit()
            await session.refresh(step)
        return step

    async def list_steps(self, execution_id: str) -> list[ExecutionStep]:
        query = (
            select(ExecutionStep)
            .where(ExecutionStep.execution_id == execution_id)
            .order_by(ExecutionStep.started_at)
        )
        async with self._session_maker() as session:
            result = await session.execute(query)
            return list(result.scalars().all())

    async def _get(self, session: AsyncSession, execution_id: str) -> Execution:
        execution = await session.get(Execution, execution_id)
        if execution is None:
            raise RecordNotFoundError(f"Execution '{execution_id}' not found")
        return execution

    async def _get_step(self, session: AsyncSession, step_id: str) -> ExecutionStep:
        step = await session.get(ExecutionStep, step_id)
        if step is None:
            raise RecordNotFoundError(f"Step '{step_id}' not found")
        return step
