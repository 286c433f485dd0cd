"""Node library API endpoints.

Provides the node schemas the editor uses to render ports and check
connections.
"""

from typing import Any

import structlog
from fastapi import APIRouter, HTTPException, status

from nodeflow.api.deps import NodeRegistryDep
from nodeflow.models.node import NodeCategory

logger = structlog.get_logger()

router = APIRouter()


@router.get("", response_model=dict[str, Any])
async def list_nodes(registry: NodeRegistryDep) -> dict[str, Any]:
    """List all available nodes, organized by category."""
    definitions = registry.list_all()
    return {
        "total": len(definitions),
        "categories": registry.get_catalog(),
    }


@router.get("/category/{category}", response_model=list[dict[str, Any]])
async def list_nodes_by_category(
    category: NodeCategory,
    registry: NodeRegistryDep,
) -> list[dict[str, Any]]:
    """List nodes in one category."""
    return [d.to_dict() for d in registry.list_by_category(category)]


@router.get("/{node_type}", response_model=dict[str, Any])
async def get_node(
    node_type: str,
    registry: NodeRegistryDep,
) -> dict[str, Any]:
    """Get one node schema by type (legacy aliases accepted).

    Args:
        node_type: Node type, e.g. ``runAnyLLM`` or ``llm-node``
        registry: Node registry

    Returns:
        Node schema with ports and initial data
    """
    definition = registry.get_definition(node_type)
    if definition is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Node type '{node_type}' not found",
        )
    return definition.to_dict()
