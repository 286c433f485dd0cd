"""Base node interface.

Defines the abstract base class for all workflow node behaviors and the
helpers they use to read upstream outputs.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Generic, Mapping, Sequence, TypeVar

import structlog

from nodeflow.integrations.base import EffectorError, Effectors
from nodeflow.models.node import GraphEdge, GraphNode, NodeDefinition, NodeKind

logger = structlog.get_logger()

# Type variables for prepared input / raw output
InputT = TypeVar("InputT")
OutputT = TypeVar("OutputT")


class NodeExecutionError(Exception):
    """Error during node execution."""

    def __init__(
        self,
        message: str,
        node_id: str,
        node_type: str,
        error_code: str = "NODE_ERROR",
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.node_id = node_id
        self.node_type = node_type
        self.error_code = error_code
        self.details = details or {}


@dataclass
class NodeContext:
    """Context passed to a node during execution."""

    execution_id: str
    node_id: str
    effectors: Effectors
    logs: list[str] = field(default_factory=list)

    def log(self, message: str) -> None:
        """Append a line to the step log."""
        self.logs.append(message)


class InputResolver:
    """Reads a node's inputs from upstream outputs via edge/port matching.

    Missing producers (no edge, or no output yet) resolve to None; each
    node applies its own fallback.
    """

    def __init__(
        self,
        node_id: str,
        edges: Sequence[GraphEdge],
        outputs: Mapping[str, Any],
    ) -> None:
        self._incoming = [e for e in edges if e.target == node_id]
        self._outputs = outputs

    @property
    def incoming(self) -> list[GraphEdge]:
        return list(self._incoming)

    def get(self, port_id: str) -> Any:
        """Output of the producer connected to ``port_id``."""
        edge = next((e for e in self._incoming if e.target_handle == port_id), None)
        if edge is None:
            return None
        return self._outputs.get(edge.source)

    def get_any(self) -> Any:
        """Output of the first incoming edge, for single-input nodes."""
        if not self._incoming:
            return None
        return self._outputs.get(self._incoming[0].source)

    def get_all(self, port_id: str) -> list[Any]:
        """Outputs of every producer connected to ``port_id``, in edge order."""
        return [
            self._outputs.get(e.source)
            for e in self._incoming
            if e.target_handle == port_id
        ]

    def get_unclaimed(self, claimed_ports: Sequence[str]) -> Any:
        """Output of the first edge not bound to one of ``claimed_ports``."""
        edge = next((e for e in self._incoming if e.target_handle not in claimed_ports), None)
        if edge is None:
            return None
        return self._outputs.get(edge.source)


def extract_text(value: Any) -> str | None:
    """Text carried by an upstream output (``text`` first, then ``output``)."""
    if value is None:
        return None
    if isinstance(value, str):
        return value or None
    if isinstance(value, Mapping):
        for key in ("text", "output"):
            candidate = value.get(key)
            if isinstance(candidate, str) and candidate:
                return candidate
    return None


def extract_media_urls(value: Any) -> list[str]:
    """Media URLs carried by an upstream output.

    Checks ``outputUrl``, ``output``, ``image_url`` and ``video_url``, or
    the value itself when it is a string. Lists are flattened.
    """
    if value is None:
        return []
    if isinstance(value, str):
        return [value] if value else []
    if isinstance(value, list):
        urls: list[str] = []
        for item in value:
            urls.extend(extract_media_urls(item))
        return urls
    if isinstance(value, Mapping):
        for key in ("outputUrl", "output", "image_url", "video_url"):
            candidate = value.get(key)
            if candidate:
                return extract_media_urls(candidate)
    return []


def extract_media_url(value: Any) -> str | None:
    """First media URL carried by an upstream output."""
    urls = extract_media_urls(value)
    return urls[0] if urls else None


class BaseNode(ABC, Generic[InputT, OutputT]):
    """Abstract base class for workflow node behaviors.

    All nodes must implement:
    - get_definition(): Returns node metadata and port schema
    - prepare(): Resolves inputs and node configuration into typed input
    - execute(): Performs the node's operation

    Example implementation:
        class TextNode(BaseNode[str, dict[str, str]]):
            def get_definition(self) -> NodeDefinition:
                return NodeDefinition(kind=NodeKind.TEXT, ...)

            def prepare(self, node, inputs) -> str:
                return node.config.text or "No text"

            async def execute(self, input_data, context) -> dict[str, str]:
                return {"text": input_data, "output": input_data}
    """

    @abstractmethod
    def get_definition(self) -> NodeDefinition:
        """Get the node definition with metadata and ports."""
        pass

    @abstractmethod
    def prepare(self, node: GraphNode, inputs: InputResolver) -> InputT:
        """Resolve the node's typed input from upstream outputs and config.

        Missing inputs must fall back to node-configured defaults rather
        than fail.
        """
        pass

    @abstractmethod
    async def execute(self, input_data: InputT, context: NodeContext) -> OutputT:
        """Execute the node's operation.

        Raises:
            EffectorError: If the backing effector fails
        """
        pass

    def serialize_output(self, output_data: OutputT) -> Any:
        """Convert the node output into a JSON-compatible value."""
        return output_data

    async def run(
        self,
        node: GraphNode,
        inputs: InputResolver,
        context: NodeContext,
    ) -> Any:
        """Run the node with full lifecycle.

        Raises:
            NodeExecutionError: If preparation or execution fails
        """
        try:
            prepared = self.prepare(node, inputs)
            output = await self.execute(prepared, context)
            return self.serialize_output(output)

        except NodeExecutionError:
            raise
        except EffectorError as e:
            raise NodeExecutionError(
                message=str(e),
                node_id=node.id,
                node_type=node.type,
                error_code=e.error_code,
                details=e.details,
            ) from e
        except Exception as e:
            logger.exception(
                "node_execution_failed",
                node_id=node.id,
                node_type=node.type,
                execution_id=context.execution_id,
            )
            raise NodeExecutionError(
                message=str(e),
                node_id=node.id,
                node_type=node.type,
                error_code="EXECUTION_ERROR",
            ) from e

    @property
    def kind(self) -> NodeKind:
        """Canonical node kind handled by this behavior."""
        return self.get_definition().kind
