"""Edit-time connection validation.

Decides whether a proposed edge may be added to a graph being edited:
port type compatibility plus an independent cycle veto. Not used during
execution - graphs are validated on save and at run start.
"""

from dataclasses import dataclass

import structlog

from nodeflow.core.graph import would_create_cycle
from nodeflow.models.node import GraphEdge, GraphNode, NodeKind, PortSchema, PortType
from nodeflow.nodes.registry import NodeRegistry, get_node_registry

logger = structlog.get_logger()

# Default output type per node kind when the source handle is the generic "output"
DEFAULT_OUTPUT_TYPES: dict[NodeKind, PortType] = {
    NodeKind.TEXT: PortType.TEXT,
    NodeKind.UPLOAD_IMAGE: PortType.IMAGE,
    NodeKind.UPLOAD_VIDEO: PortType.VIDEO,
    NodeKind.CROP_IMAGE: PortType.IMAGE,
    NodeKind.EXTRACT_FRAME: PortType.IMAGE,
    NodeKind.LLM: PortType.TEXT,
}


@dataclass
class Connection:
    """A proposed edge between two node ports."""

    source: str
    target: str
    source_handle: str | None = None
    target_handle: str | None = None


@dataclass
class ConnectionCheck:
    """Outcome of validating a proposed connection."""

    allowed: bool
    reason: str
    source_type: PortType | None = None
    target_type: PortType | None = None


def can_connect(source_type: PortType | None, target_type: PortType | None) -> bool:
    """Check port type compatibility.

    Types must match exactly, except that an ``any`` target accepts
    everything. Undetermined types are allowed.
    """
    if source_type is None or target_type is None:
        return True
    if target_type == PortType.ANY:
        return True
    return source_type == target_type


def _find_port(ports: list[PortSchema], port_id: str | None) -> PortSchema | None:
    return next((p for p in ports if p.id == port_id), None)


def resolve_output_type(
    node: GraphNode,
    handle: str | None,
    registry: NodeRegistry | None = None,
) -> PortType | None:
    """Declared type of a node's output port, or None if undetermined."""
    port = _find_port(node.outputs, handle)
    if port is None:
        definition = (registry or get_node_registry()).get_definition(node.type)
        if definition is not None:
            port = definition.find_output(handle)
    if port is not None and port.type is not None:
        return port.type
    if handle == "output":
        return DEFAULT_OUTPUT_TYPES.get(node.kind)
    return None


def resolve_input_type(
    node: GraphNode,
    handle: str | None,
    registry: NodeRegistry | None = None,
) -> PortType | None:
    """Declared type of a node's input port, or None if undetermined."""
    port = _find_port(node.inputs, handle)
    if port is None:
        definition = (registry or get_node_registry()).get_definition(node.type)
        if definition is not None:
            port = definition.find_input(handle)
    return port.type if port is not None else None


def validate_connection(
    connection: Connection,
    source_node: GraphNode | None,
    target_node: GraphNode | None,
    edges: list[GraphEdge],
    registry: NodeRegistry | None = None,
) -> ConnectionCheck:
    """Validate a proposed connection for interactive edge creation.

    Args:
        connection: Proposed edge
        source_node: Node the edge starts from (None if missing)
        target_node: Node the edge ends at (None if missing)
        edges: Existing edges of the graph
        registry: Node library used for schema lookup

    Returns:
        ConnectionCheck with the decision and a human-readable reason
    """
    if source_node is None or target_node is None:
        logger.warning(
            "connection_rejected_missing_node",
            source=connection.source,
            target=connection.target,
        )
        return ConnectionCheck(allowed=False, reason="Source or target node not found")

    if would_create_cycle(connection.source, connection.target, edges):
        logger.info(
            "connection_rejected_cycle",
            source=connection.source,
            target=connection.target,
        )
        return ConnectionCheck(allowed=False, reason="Connection would create a cycle")

    source_type = resolve_output_type(source_node, connection.source_handle, registry)
    target_type = resolve_input_type(target_node, connection.target_handle, registry)

    if not can_connect(source_type, target_type):
        logger.info(
            "connection_rejected_type_mismatch",
            source_type=source_type.value if source_type else None,
            target_type=target_type.value if target_type else None,
            source_handle=connection.source_handle,
            target_handle=connection.target_handle,
        )
        return ConnectionCheck(
            allowed=False,
            reason=(
                f'"{source_type.value}" output cannot connect to '
                f'"{target_type.value}" input'
            ),
            source_type=source_type,
            target_type=target_type,
        )

    if source_type is None or target_type is None:
        reason = "Connection allowed (types unknown)"
    else:
        reason = f"Connection valid: {source_type.value} -> {target_type.value}"

    return ConnectionCheck(
        allowed=True,
        reason=reason,
        source_type=source_type,
        target_type=target_type,
    )
