"""Node behaviors - built-in workflow nodes."""

from nodeflow.nodes.base import (
    BaseNode,
    InputResolver,
    NodeContext,
    NodeExecutionError,
    extract_media_url,
    extract_media_urls,
    extract_text,
)
from nodeflow.nodes.registry import NodeRegistry, NodeRegistryError, get_node_registry

__all__ = [
    "BaseNode",
    "InputResolver",
    "NodeContext",
    "NodeExecutionError",
    "NodeRegistry",
    "NodeRegistryError",
    "extract_media_url",
    "extract_media_urls",
    "extract_text",
    "get_node_registry",
]
