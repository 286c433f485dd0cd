"""Services layer - Business logic and orchestration."""

from nodeflow.services.execution_service import (
    ExecutionAccessDeniedError,
    ExecutionNotFoundError,
    ExecutionService,
    ExecutionServiceError,
)
from nodeflow.services.run_dispatcher import RunDispatcher
from nodeflow.services.workflow_service import (
    WorkflowAccessDeniedError,
    WorkflowNotFoundError,
    WorkflowService,
    WorkflowServiceError,
    WorkflowValidationError,
)

__all__ = [
    "ExecutionAccessDeniedError",
    "ExecutionNotFoundError",
    "ExecutionService",
    "ExecutionServiceError",
    "RunDispatcher",
    "WorkflowAccessDeniedError",
    "WorkflowNotFoundError",
    "WorkflowService",
    "WorkflowServiceError",
    "WorkflowValidationError",
]
