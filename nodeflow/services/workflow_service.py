"""Workflow service.

Handles CRUD operations for saved workflow graphs.
"""

import structlog
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from nodeflow.core.graph import validate_graph
from nodeflow.models.execution import Execution, ExecutionStep
from nodeflow.models.workflow import (
    Workflow,
    WorkflowCreate,
    WorkflowGraph,
    WorkflowRead,
    WorkflowUpdate,
    utc_now,
)

logger = structlog.get_logger()


class WorkflowServiceError(Exception):
    """Error in workflow service operations."""

    pass


class WorkflowNotFoundError(WorkflowServiceError):
    """Workflow not found."""

    pass


class WorkflowAccessDeniedError(WorkflowServiceError):
    """User doesn't have access to workflow."""

    pass


class WorkflowValidationError(WorkflowServiceError):
    """Workflow validation failed."""

    def __init__(self, message: str, errors: list[str]) -> None:
        super().__init__(message)
        self.errors = errors


class WorkflowService:
    """Service for managing workflows.

    Handles:
    - Creating workflows from graph JSON
    - Reading and listing workflows
    - Replacing workflow graphs
    - Deleting workflows together with their run history
    - User-scoped access control

    Graphs are validated on every save, so a cyclic or dangling graph never
    reaches the database.

    Example usage:
        service = WorkflowService(session)

        workflow = await service.create(
            user_id="user-123",
            data=WorkflowCreate(
                name="My Workflow",
                graph={"nodes": [...], "edges": [...]}
            )
        )
    """

    def __init__(self, session: AsyncSession) -> None:
        """Initialize workflow service.

        Args:
            session: Async database session
        """
        self._session = session

    async def create(
        self,
        user_id: str,
        data: WorkflowCreate,
    ) -> WorkflowRead:
        """Create a new workflow.

        Args:
            user_id: Owner user ID
            data: Workflow creation data

        Returns:
            Created workflow

        Raises:
            WorkflowValidationError: If graph is invalid
        """
        self._ensure_valid(data.graph)

        workflow = Workflow(
            user_id=user_id,
            name=data.name,
            description=data.description,
            graph=data.graph.model_dump_json(),
        )

        self._session.add(workflow)
        await self._session.commit()
        await self._session.refresh(workflow)

        logger.info(
            "workflow_created",
            workflow_id=workflow.id,
            user_id=user_id,
            node_count=len(data.graph.nodes),
        )

        return self._to_read(workflow)

    async def get(
        self,
        workflow_id: str,
        user_id: str,
    ) -> WorkflowRead:
        """Get a workflow.

        Raises:
            WorkflowNotFoundError: If workflow doesn't exist
            WorkflowAccessDeniedError: If user doesn't own workflow
        """
        workflow = await self._get_and_verify(workflow_id, user_id)
        return self._to_read(workflow)

    async def list_all(
        self,
        user_id: str,
        limit: int = 50,
        offset: int = 0,
    ) -> list[WorkflowRead]:
        """List user's workflows, most recently updated first."""
        query = (
            select(Workflow)
            .where(Workflow.user_id == user_id)
            .order_by(Workflow.updated_at.desc())
            .limit(limit)
            .offset(offset)
        )

        result = await self._session.execute(query)
        workflows = result.scalars().all()

        return [self._to_read(w) for w in workflows]

    async def update(
        self,
        workflow_id: str,
        user_id: str,
        data: WorkflowUpdate,
    ) -> WorkflowRead:
        """Update a workflow.

        Args:
            workflow_id: Workflow ID
            user_id: Requesting user ID
            data: Update data; a graph replaces the saved one entirely

        Returns:
            Updated workflow

        Raises:
            WorkflowNotFoundError: If workflow doesn't exist
            WorkflowAccessDeniedError: If user doesn't own workflow
            WorkflowValidationError: If graph is invalid
        """
        workflow = await self._get_and_verify(workflow_id, user_id)

        if data.name is not None:
            workflow.name = data.name

        if data.description is not None:
            workflow.description = data.description

        if data.graph is not None:
            self._ensure_valid(data.graph)
            workflow.set_graph(data.graph)

        workflow.updated_at = utc_now()
        await self._session.commit()
        await self._session.refresh(workflow)

        logger.info(
            "workflow_updated",
            workflow_id=workflow_id,
            user_id=user_id,
        )

        return self._to_read(workflow)

    async def delete(
        self,
        workflow_id: str,
        user_id: str,
    ) -> None:
        """Delete a workflow and its executions.

        Raises:
            WorkflowNotFoundError: If workflow doesn't exist
            WorkflowAccessDeniedError: If user doesn't own workflow
        """
        workflow = await self._get_and_verify(workflow_id, user_id)

        execution_ids = select(Execution.id).where(Execution.workflow_id == workflow_id)
        await self._session.execute(
            delete(ExecutionStep).where(ExecutionStep.execution_id.in_(execution_ids))
        )
        await self._session.execute(
            delete(Execution).where(Execution.workflow_id == workflow_id)
        )
        await self._session.delete(workflow)
        await self._session.commit()

        logger.info(
            "workflow_deleted",
            workflow_id=workflow_id,
            user_id=user_id,
        )

    async def get_entity(self, workflow_id: str, user_id: str) -> Workflow:
        """Get the workflow entity after verifying ownership."""
        return await self._get_and_verify(workflow_id, user_id)

    async def _get_and_verify(
        self,
        workflow_id: str,
        user_id: str,
    ) -> Workflow:
        """Get workflow and verify ownership.

        Raises:
            WorkflowNotFoundError: If not found
            WorkflowAccessDeniedError: If wrong owner
        """
        query = select(Workflow).where(Workflow.id == workflow_id)
        result = await self._session.execute(query)
        workflow = result.scalar_one_or_none()

        if workflow is None:
            raise WorkflowNotFoundError(f"Workflow '{workflow_id}' not found")

        if workflow.user_id != user_id:
            logger.warning(
                "workflow_access_denied",
                workflow_id=workflow_id,
                requested_by=user_id,
                owner=workflow.user_id,
            )
            raise WorkflowAccessDeniedError("Access denied to workflow")

        return workflow

    def _ensure_valid(self, graph: WorkflowGraph) -> None:
        errors = validate_graph(graph.runtime_nodes(), graph.runtime_edges())
        if errors:
            raise WorkflowValidationError("Invalid workflow graph", errors=errors)

    def _to_read(self, workflow: Workflow) -> WorkflowRead:
        """Convert workflow entity to read schema."""
        return WorkflowRead(
            id=workflow.id,
            user_id=workflow.user_id,
            name=workflow.name,
            description=workflow.description,
            graph=workflow.get_graph(),
            created_at=workflow.created_at,
            updated_at=workflow.updated_at,
        )
