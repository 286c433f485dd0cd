"""Execution API endpoints.

Handles execution polling, SSE streaming and cancellation.
"""

import json

import structlog
from fastapi import APIRouter, HTTPException, status
from sse_starlette.sse import EventSourceResponse

from nodeflow.api.deps import CurrentUserId, ExecutionServiceDep
from nodeflow.models.execution import ExecutionRead
from nodeflow.services.execution_service import (
    ExecutionAccessDeniedError,
    ExecutionNotFoundError,
    ExecutionServiceError,
)

logger = structlog.get_logger()

router = APIRouter()


@router.get("/{execution_id}", response_model=ExecutionRead)
async def get_execution(
    execution_id: str,
    user_id: CurrentUserId,
    service: ExecutionServiceDep,
) -> ExecutionRead:
    """Get an execution with its steps.

    Args:
        execution_id: Execution identifier
        user_id: Current authenticated user
        service: Execution service

    Returns:
        Execution data including per-node steps
    """
    try:
        return await service.get(execution_id=execution_id, user_id=user_id)
    except ExecutionNotFoundError as e:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(e),
        ) from e
    except ExecutionAccessDeniedError as e:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=str(e),
        ) from e


@router.get("/{execution_id}/stream")
async def stream_execution(
    execution_id: str,
    user_id: CurrentUserId,
    service: ExecutionServiceDep,
) -> EventSourceResponse:
    """Stream execution snapshots via SSE.

    Event types:
    - snapshot: Execution state changed (status or any step)
    - complete: Execution reached a terminal status; carries the final state
    - error: Stream failed

    Args:
        execution_id: Execution identifier
        user_id: Current authenticated user
        service: Execution service

    Returns:
        SSE event stream
    """
    # Verify access first
    try:
        await service.get(execution_id=execution_id, user_id=user_id)
    except ExecutionNotFoundError as e:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(e),
        ) from e
    except ExecutionAccessDeniedError as e:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=str(e),
        ) from e

    async def event_generator():
        """Generate SSE events from execution snapshots."""
        try:
            async for snapshot in service.stream(execution_id, user_id):
                yield {
                    "event": "complete" if snapshot.status.is_terminal else "snapshot",
                    "data": snapshot.model_dump_json(),
                }
        except Exception as e:
            logger.exception(
                "stream_error",
                execution_id=execution_id,
                error=str(e),
            )
            yield {
                "event": "error",
                "data": json.dumps({"error": str(e)}),
            }

    return EventSourceResponse(event_generator())


@router.post("/{execution_id}/cancel", response_model=ExecutionRead)
async def cancel_execution(
    execution_id: str,
    user_id: CurrentUserId,
    service: ExecutionServiceDep,
) -> ExecutionRead:
    """Cancel a queued or running execution.

    Steps still running are marked failed with "Execution canceled".

    Args:
        execution_id: Execution identifier
        user_id: Current authenticated user
        service: Execution service

    Returns:
        Updated execution
    """
    try:
        return await service.cancel(execution_id=execution_id, user_id=user_id)
    except ExecutionNotFoundError as e:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(e),
        ) from e
    except ExecutionAccessDeniedError as e:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=str(e),
        ) from e
    except ExecutionServiceError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e),
        ) from e
