"""Data models - SQLModel entities and runtime models."""

from nodeflow.models.auth import TokenPayload
from nodeflow.models.execution import (
    Execution,
    ExecutionRead,
    ExecutionStatus,
    ExecutionStep,
    ExecutionStepRead,
    InvalidStatusTransitionError,
    RunRequest,
    StepStatus,
)
from nodeflow.models.node import (
    GraphEdge,
    GraphNode,
    NodeCategory,
    NodeDefinition,
    NodeKind,
    PortSchema,
    PortType,
)
from nodeflow.models.workflow import (
    ConnectionValidateRequest,
    ConnectionValidateResponse,
    Workflow,
    WorkflowCreate,
    WorkflowGraph,
    WorkflowRead,
    WorkflowUpdate,
)

__all__ = [
    "ConnectionValidateRequest",
    "ConnectionValidateResponse",
    "Execution",
    "ExecutionRead",
    "ExecutionStatus",
    "ExecutionStep",
    "ExecutionStepRead",
    "GraphEdge",
    "GraphNode",
    "InvalidStatusTransitionError",
    "NodeCategory",
    "NodeDefinition",
    "NodeKind",
    "PortSchema",
    "PortType",
    "RunRequest",
    "StepStatus",
    "TokenPayload",
    "Workflow",
    "WorkflowCreate",
    "WorkflowGraph",
    "WorkflowRead",
    "WorkflowUpdate",
]
