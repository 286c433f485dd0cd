"""Workflow API endpoints.

Handles workflow CRUD, run triggering, run history and edit-time
connection checks.
"""

from typing import Annotated

import structlog
from fastapi import APIRouter, HTTPException, Query, status

from nodeflow.api.deps import (
    CurrentUserId,
    ExecutionServiceDep,
    NodeRegistryDep,
    WorkflowServiceDep,
)
from nodeflow.core.connection import Connection, validate_connection
from nodeflow.models.execution import ExecutionRead, RunTriggerBody, RunTriggerResponse
from nodeflow.models.workflow import (
    ConnectionValidateRequest,
    ConnectionValidateResponse,
    WorkflowCreate,
    WorkflowRead,
    WorkflowUpdate,
)
from nodeflow.services.workflow_service import (
    WorkflowAccessDeniedError,
    WorkflowNotFoundError,
    WorkflowValidationError,
)

logger = structlog.get_logger()

router = APIRouter()


def _workflow_http_error(e: Exception) -> HTTPException:
    if isinstance(e, WorkflowNotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    if isinstance(e, WorkflowAccessDeniedError):
        return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e))
    if isinstance(e, WorkflowValidationError):
        return HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={"message": str(e), "errors": e.errors},
        )
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


@router.get("", response_model=list[WorkflowRead])
async def list_workflows(
    user_id: CurrentUserId,
    service: WorkflowServiceDep,
    limit: Annotated[int, Query(ge=1, le=100)] = 50,
    offset: Annotated[int, Query(ge=0)] = 0,
) -> list[WorkflowRead]:
    """List user's workflows.

    Args:
        user_id: Current authenticated user
        service: Workflow service
        limit: Maximum number of results
        offset: Pagination offset

    Returns:
        List of workflows
    """
    return await service.list_all(user_id=user_id, limit=limit, offset=offset)


@router.post("", response_model=WorkflowRead, status_code=status.HTTP_201_CREATED)
async def create_workflow(
    user_id: CurrentUserId,
    service: WorkflowServiceDep,
    data: WorkflowCreate,
) -> WorkflowRead:
    """Create a new workflow."""
    try:
        return await service.create(user_id=user_id, data=data)
    except WorkflowValidationError as e:
        raise _workflow_http_error(e) from e


@router.post("/connections/validate", response_model=ConnectionValidateResponse)
async def validate_workflow_connection(
    user_id: CurrentUserId,
    registry: NodeRegistryDep,
    data: ConnectionValidateRequest,
) -> ConnectionValidateResponse:
    """Check whether the editor may add a connection.

    Rejects connections between incompatible port types and connections
    that would close a cycle.
    """
    check = validate_connection(
        Connection(
            source=data.connection.source,
            target=data.connection.target,
            source_handle=data.connection.sourceHandle,
            target_handle=data.connection.targetHandle,
        ),
        source_node=data.sourceNode.to_runtime() if data.sourceNode else None,
        target_node=data.targetNode.to_runtime() if data.targetNode else None,
        edges=[e.to_runtime() for e in data.edges],
        registry=registry,
    )

    return ConnectionValidateResponse(
        allowed=check.allowed,
        reason=check.reason,
        sourceType=check.source_type.value if check.source_type else None,
        targetType=check.target_type.value if check.target_type else None,
    )


@router.get("/{workflow_id}", response_model=WorkflowRead)
async def get_workflow(
    workflow_id: str,
    user_id: CurrentUserId,
    service: WorkflowServiceDep,
) -> WorkflowRead:
    """Get a workflow by ID."""
    try:
        return await service.get(workflow_id=workflow_id, user_id=user_id)
    except (WorkflowNotFoundError, WorkflowAccessDeniedError) as e:
        raise _workflow_http_error(e) from e


@router.put("/{workflow_id}", response_model=WorkflowRead)
async def update_workflow(
    workflow_id: str,
    user_id: CurrentUserId,
    service: WorkflowServiceDep,
    data: WorkflowUpdate,
) -> WorkflowRead:
    """Update a workflow.

    Args:
        workflow_id: Workflow identifier
        user_id: Current authenticated user
        service: Workflow service
        data: Update data

    Returns:
        Updated workflow
    """
    try:
        return await service.update(
            workflow_id=workflow_id,
            user_id=user_id,
            data=data,
        )
    except (WorkflowNotFoundError, WorkflowAccessDeniedError, WorkflowValidationError) as e:
        raise _workflow_http_error(e) from e


@router.delete("/{workflow_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_workflow(
    workflow_id: str,
    user_id: CurrentUserId,
    service: WorkflowServiceDep,
) -> None:
    """Delete a workflow and its run history."""
    try:
        await service.delete(workflow_id=workflow_id, user_id=user_id)
    except (WorkflowNotFoundError, WorkflowAccessDeniedError) as e:
        raise _workflow_http_error(e) from e


@router.post("/{workflow_id}/run", response_model=RunTriggerResponse)
async def run_workflow(
    workflow_id: str,
    user_id: CurrentUserId,
    service: ExecutionServiceDep,
    data: RunTriggerBody | None = None,
) -> RunTriggerResponse:
    """Queue a run of the workflow.

    Without ``selectedNodeIds`` the whole graph runs. With them, only the
    selected nodes and their upstream dependencies run. Poll the returned
    execution (or its stream) for progress.

    Args:
        workflow_id: Workflow identifier
        user_id: Current authenticated user
        service: Execution service
        data: Optional run scope

    Returns:
        Execution id, trigger id and scope of the queued run
    """
    selected = data.selectedNodeIds if data is not None else None

    logger.info(
        "run_requested",
        workflow_id=workflow_id,
        user_id=user_id,
        selected_count=len(selected or []),
    )

    try:
        return await service.trigger_run(
            workflow_id=workflow_id,
            user_id=user_id,
            selected_node_ids=selected,
        )
    except (WorkflowNotFoundError, WorkflowAccessDeniedError) as e:
        raise _workflow_http_error(e) from e


@router.get("/{workflow_id}/executions", response_model=list[ExecutionRead])
async def list_workflow_executions(
    workflow_id: str,
    user_id: CurrentUserId,
    service: ExecutionServiceDep,
    limit: Annotated[int, Query(ge=1, le=100)] = 50,
    offset: Annotated[int, Query(ge=0)] = 0,
) -> list[ExecutionRead]:
    """Run history of a workflow, newest first."""
    try:
        return await service.list_for_workflow(
            workflow_id=workflow_id,
            user_id=user_id,
            limit=limit,
            offset=offset,
        )
    except (WorkflowNotFoundError, WorkflowAccessDeniedError) as e:
        raise _workflow_http_error(e) from e
