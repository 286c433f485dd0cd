"""API route handlers."""

from nodeflow.api.routes.executions import router as executions_router
from nodeflow.api.routes.nodes import router as nodes_router
from nodeflow.api.routes.workflows import router as workflows_router

__all__ = [
    "executions_router",
    "nodes_router",
    "workflows_router",
]
