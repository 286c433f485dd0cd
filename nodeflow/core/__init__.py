"""Core execution engine: graph algorithms, connection rules, orchestration."""

from nodeflow.core.connection import (
    Connection,
    ConnectionCheck,
    can_connect,
    validate_connection,
)
from nodeflow.core.graph import (
    GraphInvalidError,
    RunPlan,
    dependency_closure,
    ensure_valid_graph,
    find_cycle,
    induced_subgraph,
    is_acyclic,
    levelize,
    plan_run,
    validate_graph,
    would_create_cycle,
)
from nodeflow.core.node_executor import NodeExecutor
from nodeflow.core.orchestrator import (
    ExecutionError,
    OutputTable,
    RunResult,
    WorkflowOrchestrator,
    WorkflowRunError,
)

__all__ = [
    "Connection",
    "ConnectionCheck",
    "ExecutionError",
    "GraphInvalidError",
    "NodeExecutor",
    "OutputTable",
    "RunPlan",
    "RunResult",
    "WorkflowOrchestrator",
    "WorkflowRunError",
    "can_connect",
    "dependency_closure",
    "ensure_valid_graph",
    "find_cycle",
    "induced_subgraph",
    "is_acyclic",
    "levelize",
    "plan_run",
    "validate_connection",
    "validate_graph",
    "would_create_cycle",
]
