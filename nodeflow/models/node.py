"""Node and edge runtime models.

Runtime models for workflow graph nodes (not persisted directly - the graph
is stored as JSON on the workflow). Node configuration arrives as an open
``data`` bag from the editor and is parsed into a closed set of typed
variants, one per node kind, plus an explicit unknown variant.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Union


class PortType(str, Enum):
    """Declared data type of a node port."""

    TEXT = "text"
    IMAGE = "image"
    VIDEO = "video"
    ANY = "any"


class NodeKind(str, Enum):
    """Canonical node types understood by the execution engine."""

    TEXT = "textNode"
    UPLOAD_IMAGE = "uploadImage"
    UPLOAD_VIDEO = "uploadVideo"
    LLM = "runAnyLLM"
    CROP_IMAGE = "cropImage"
    EXTRACT_FRAME = "extractFrame"
    OUTPUT = "outputNode"
    UNKNOWN = "unknown"


class NodeCategory(str, Enum):
    """Node category for organization in the node library."""

    GENERATE = "generate"
    ASSETS = "assets"
    MODELS = "models"
    PROCESSING = "processing"
    OUTPUT = "output"


# Legacy and alternate spellings still found in saved graphs
NODE_TYPE_ALIASES: dict[str, NodeKind] = {
    "text-node": NodeKind.TEXT,
    "llm-node": NodeKind.LLM,
    "run-all-llm": NodeKind.LLM,
    "crop-image": NodeKind.CROP_IMAGE,
    "extract-frame": NodeKind.EXTRACT_FRAME,
    "output-node": NodeKind.OUTPUT,
}


def resolve_node_kind(node_type: str | None) -> NodeKind:
    """Map a raw node type string to its canonical kind."""
    if not node_type:
        return NodeKind.UNKNOWN
    if node_type in NODE_TYPE_ALIASES:
        return NODE_TYPE_ALIASES[node_type]
    try:
        kind = NodeKind(node_type)
    except ValueError:
        return NodeKind.UNKNOWN
    return kind


@dataclass
class PortSchema:
    """A named, typed input or output slot on a node."""

    id: str
    label: str
    type: PortType | None = None
    tooltip_type: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for API responses."""
        result: dict[str, Any] = {
            "id": self.id,
            "label": self.label,
            "type": self.type.value if self.type else None,
        }
        if self.tooltip_type:
            result["tooltipType"] = self.tooltip_type
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PortSchema":
        """Create from dictionary.

        Unrecognized port types are kept as undetermined (``None``).
        """
        raw_type = data.get("type")
        port_type: PortType | None = None
        if isinstance(raw_type, str):
            try:
                port_type = PortType(raw_type.lower())
            except ValueError:
                port_type = None
        return cls(
            id=str(data.get("id", "")),
            label=str(data.get("label", data.get("id", ""))),
            type=port_type,
            tooltip_type=data.get("tooltipType"),
        )


@dataclass
class NodeDefinition:
    """Node library entry: metadata and port schema for a node kind.

    Not persisted to database - loaded from node implementations.
    """

    kind: NodeKind
    label: str
    category: NodeCategory
    description: str = ""
    inputs: list[PortSchema] = field(default_factory=list)
    outputs: list[PortSchema] = field(default_factory=list)
    aliases: list[str] = field(default_factory=list)
    initial_data: dict[str, Any] = field(default_factory=dict)

    @property
    def type(self) -> str:
        """Canonical node type string."""
        return self.kind.value

    def find_input(self, port_id: str | None) -> PortSchema | None:
        """Get an input port by id."""
        return next((p for p in self.inputs if p.id == port_id), None)

    def find_output(self, port_id: str | None) -> PortSchema | None:
        """Get an output port by id."""
        return next((p for p in self.outputs if p.id == port_id), None)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for API responses."""
        return {
            "type": self.type,
            "label": self.label,
            "category": self.category.value,
            "description": self.description,
            "inputs": [p.to_dict() for p in self.inputs],
            "outputs": [p.to_dict() for p in self.outputs],
            "aliases": self.aliases,
            "initialData": self.initial_data,
        }


# Node data variants


@dataclass
class TextNodeData:
    text: str | None = None


@dataclass
class UploadImageData:
    image_url: str | None = None


@dataclass
class UploadVideoData:
    video_url: str | None = None


@dataclass
class LLMNodeData:
    model: str | None = None
    prompt: str | None = None
    system_prompt: str | None = None


@dataclass
class CropImageData:
    image_url: str | None = None
    width: int | None = None
    height: int | None = None
    x: int | None = None
    y: int | None = None


@dataclass
class ExtractFrameData:
    video_url: str | None = None
    timestamp: float | None = None


@dataclass
class OutputNodeData:
    pass


@dataclass
class UnknownNodeData:
    raw: dict[str, Any] = field(default_factory=dict)


NodeData = Union[
    TextNodeData,
    UploadImageData,
    UploadVideoData,
    LLMNodeData,
    CropImageData,
    ExtractFrameData,
    OutputNodeData,
    UnknownNodeData,
]


def _as_number(value: Any) -> Any:
    """Coerce numeric strings coming from form inputs; leave others alone."""
    if isinstance(value, str):
        try:
            return float(value) if "." in value else int(value)
        except ValueError:
            return None
    return value


def parse_node_data(kind: NodeKind, data: dict[str, Any]) -> NodeData:
    """Parse an editor ``data`` bag into the typed variant for ``kind``."""
    if kind == NodeKind.TEXT:
        return TextNodeData(text=data.get("text"))
    if kind == NodeKind.UPLOAD_IMAGE:
        return UploadImageData(image_url=data.get("imageUrl"))
    if kind == NodeKind.UPLOAD_VIDEO:
        return UploadVideoData(video_url=data.get("videoUrl"))
    if kind == NodeKind.LLM:
        return LLMNodeData(
            model=data.get("model"),
            prompt=data.get("prompt"),
            system_prompt=data.get("systemPrompt"),
        )
    if kind == NodeKind.CROP_IMAGE:
        return CropImageData(
            image_url=data.get("imageUrl"),
            width=_as_number(data.get("width")),
            height=_as_number(data.get("height")),
            x=_as_number(data.get("x")),
            y=_as_number(data.get("y")),
        )
    if kind == NodeKind.EXTRACT_FRAME:
        return ExtractFrameData(
            video_url=data.get("videoUrl"),
            timestamp=_as_number(data.get("timestamp")),
        )
    if kind == NodeKind.OUTPUT:
        return OutputNodeData()
    return UnknownNodeData(raw=dict(data))


@dataclass
class GraphNode:
    """Immutable snapshot of one node for the duration of a run."""

    id: str
    type: str
    data: dict[str, Any] = field(default_factory=dict)
    position: dict[str, float] = field(default_factory=lambda: {"x": 0, "y": 0})

    @property
    def kind(self) -> NodeKind:
        """Canonical node kind (aliases resolved)."""
        return resolve_node_kind(self.type)

    @property
    def config(self) -> NodeData:
        """Typed view of ``data`` for this node's kind."""
        return parse_node_data(self.kind, self.data)

    @property
    def label(self) -> str:
        """Display label, falling back to the node type."""
        return str(self.data.get("label") or self.type)

    @property
    def inputs(self) -> list[PortSchema]:
        """Input ports declared on the node itself."""
        return [PortSchema.from_dict(p) for p in self.data.get("inputs") or []]

    @property
    def outputs(self) -> list[PortSchema]:
        """Output ports declared on the node itself."""
        return [PortSchema.from_dict(p) for p in self.data.get("outputs") or []]

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for graph storage."""
        return {
            "id": self.id,
            "type": self.type,
            "data": self.data,
            "position": self.position,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "GraphNode":
        """Create from dictionary."""
        return cls(
            id=data["id"],
            type=data.get("type") or "",
            data=data.get("data") or {},
            position=data.get("position") or {"x": 0, "y": 0},
        )


@dataclass
class GraphEdge:
    """Directed data-flow connection between two node ports.

    A missing handle means the node's single default port.
    """

    source: str
    target: str
    source_handle: str | None = None
    target_handle: str | None = None

    def to_dict(self) -> dict[str, str | None]:
        """Convert to dictionary for graph storage."""
        return {
            "source": self.source,
            "target": self.target,
            "sourceHandle": self.source_handle,
            "targetHandle": self.target_handle,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "GraphEdge":
        """Create from dictionary."""
        return cls(
            source=data["source"],
            target=data["target"],
            source_handle=data.get("sourceHandle"),
            target_handle=data.get("targetHandle"),
        )
