"""Node registry.

Central registry for the node behaviors the execution engine can run.
"""

from typing import Type

import structlog

from nodeflow.models.node import NodeCategory, NodeDefinition, NodeKind, resolve_node_kind
from nodeflow.nodes.base import BaseNode
from nodeflow.nodes.output import UnknownNode

logger = structlog.get_logger()


class NodeRegistryError(Exception):
    """Error in node registry operations."""

    pass


class NodeRegistry:
    """Central registry for workflow node behaviors.

    Behaviors are keyed by canonical node kind. Lookups accept any spelling
    of a node type, including legacy aliases, and fall back to the unknown
    behavior through ``resolve``.

    Example usage:
        registry = NodeRegistry()
        registry.register(TextNode)

        behavior = registry.resolve("text-node")
        output = await behavior.run(node, inputs, context)
    """

    def __init__(self) -> None:
        """Initialize empty registry."""
        self._nodes: dict[NodeKind, Type[BaseNode]] = {}
        self._instances: dict[NodeKind, BaseNode] = {}
        self._fallback: BaseNode = UnknownNode()

    def register(self, node_class: Type[BaseNode]) -> None:
        """Register a node class.

        Args:
            node_class: Node class to register

        Raises:
            NodeRegistryError: If a behavior for the same kind exists
        """
        instance = node_class()
        definition = instance.get_definition()

        if definition.kind == NodeKind.UNKNOWN:
            raise NodeRegistryError("The unknown node kind cannot be registered")
        if definition.kind in self._nodes:
            raise NodeRegistryError(f"Node '{definition.type}' already registered")

        self._nodes[definition.kind] = node_class
        self._instances[definition.kind] = instance

        logger.debug(
            "node_registered",
            type=definition.type,
            category=definition.category.value,
        )

    def unregister(self, node_type: str) -> None:
        """Remove a node behavior from the registry."""
        kind = resolve_node_kind(node_type)
        self._nodes.pop(kind, None)
        self._instances.pop(kind, None)

    def get(self, node_type: str) -> BaseNode | None:
        """Get a node behavior by type or alias.

        Args:
            node_type: Node type string

        Returns:
            Node behavior or None if not registered
        """
        return self._instances.get(resolve_node_kind(node_type))

    def resolve(self, node_type: str) -> BaseNode:
        """Get a node behavior, falling back to the unknown behavior."""
        return self.get(node_type) or self._fallback

    def get_definition(self, node_type: str) -> NodeDefinition | None:
        """Get node definition by type or alias.

        Args:
            node_type: Node type string

        Returns:
            NodeDefinition or None if not registered
        """
        instance = self.get(node_type)
        if instance is None:
            return None
        return instance.get_definition()

    def list_all(self) -> list[NodeDefinition]:
        """List all registered node definitions."""
        return [inst.get_definition() for inst in self._instances.values()]

    def list_by_category(self, category: NodeCategory) -> list[NodeDefinition]:
        """List nodes by category.

        Args:
            category: Node category

        Returns:
            List of matching node definitions
        """
        return [d for d in self.list_all() if d.category == category]

    def get_catalog(self) -> dict[str, list[dict]]:
        """Node library grouped by category, for the editor."""
        catalog: dict[str, list[dict]] = {}
        for definition in self.list_all():
            catalog.setdefault(definition.category.value, []).append(definition.to_dict())
        return catalog

    def load_builtin_nodes(self) -> int:
        """Load all built-in nodes.

        Returns:
            Number of nodes loaded
        """
        from nodeflow.nodes.llm import RunLLMNode
        from nodeflow.nodes.media import CropImageNode, ExtractFrameNode
        from nodeflow.nodes.output import OutputNode
        from nodeflow.nodes.sources import TextNode, UploadImageNode, UploadVideoNode

        builtin_nodes = [
            # Sources
            TextNode,
            UploadImageNode,
            UploadVideoNode,
            # Models
            RunLLMNode,
            # Processing
            CropImageNode,
            ExtractFrameNode,
            # Output
            OutputNode,
        ]

        count = 0
        for node_class in builtin_nodes:
            try:
                self.register(node_class)
                count += 1
            except NodeRegistryError as e:
                logger.warning(
                    "builtin_node_registration_failed",
                    error=str(e),
                )

        logger.info("builtin_nodes_loaded", count=count)
        return count


# Singleton instance
_registry: NodeRegistry | None = None


def get_node_registry() -> NodeRegistry:
    """Get or create the singleton node registry.

    Returns:
        NodeRegistry instance with builtin nodes loaded
    """
    global _registry
    if _registry is None:
        _registry = NodeRegistry()
        _registry.load_builtin_nodes()
    return _registry
