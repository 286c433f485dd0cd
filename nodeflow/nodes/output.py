"""Output and fallback nodes."""

from collections.abc import Mapping
from typing import Any

import structlog

from nodeflow.models.node import (
    GraphNode,
    NodeCategory,
    NodeDefinition,
    NodeKind,
    PortSchema,
    PortType,
)
from nodeflow.nodes.base import BaseNode, InputResolver, NodeContext

logger = structlog.get_logger()

# Keys tried in order when unwrapping an upstream output
PREFERRED_KEYS = ("output", "outputUrl", "image_url", "text")


class OutputNode(BaseNode[Any, Any]):
    """Terminal node that surfaces an upstream value as the run result.

    Unwraps the most useful field of a structured upstream output and
    passes anything else through untouched.
    """

    def get_definition(self) -> NodeDefinition:
        """Get node definition."""
        return NodeDefinition(
            kind=NodeKind.OUTPUT,
            label="Output Display",
            category=NodeCategory.OUTPUT,
            description="Display the result of a workflow branch",
            inputs=[PortSchema(id="input", label="Any Output", type=PortType.ANY, tooltip_type="any")],
            aliases=["output-node"],
            initial_data={"label": "Output Display"},
        )

    def prepare(self, node: GraphNode, inputs: InputResolver) -> Any:
        value = inputs.get("input")
        if value is None:
            value = inputs.get_any()
        return value

    async def execute(self, input_data: Any, context: NodeContext) -> Any:
        if not input_data:
            return {"message": "No input received"}

        if isinstance(input_data, Mapping):
            for key in PREFERRED_KEYS:
                if input_data.get(key):
                    return input_data[key]
        return input_data


class UnknownNode(BaseNode[str, dict[str, str]]):
    """Fallback for node types the engine does not recognize."""

    def get_definition(self) -> NodeDefinition:
        """Get node definition."""
        return NodeDefinition(
            kind=NodeKind.UNKNOWN,
            label="Unknown",
            category=NodeCategory.OUTPUT,
            description="Node type not recognized by the engine",
        )

    def prepare(self, node: GraphNode, inputs: InputResolver) -> str:
        return node.type

    async def execute(self, input_data: str, context: NodeContext) -> dict[str, str]:
        logger.warning(
            "unknown_node_type",
            node_type=input_data,
            node_id=context.node_id,
            execution_id=context.execution_id,
        )
        context.log(f"Unknown node type: {input_data}")
        return {"message": "Unknown node type"}
