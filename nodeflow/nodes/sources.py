"""Source nodes.

Nodes with no inputs that publish a configured literal: a text prompt or
the URL of an uploaded image or video.
"""

from typing import Any

from nodeflow.models.node import (
    GraphNode,
    NodeCategory,
    NodeDefinition,
    NodeKind,
    PortSchema,
    PortType,
    TextNodeData,
    UploadImageData,
    UploadVideoData,
)
from nodeflow.nodes.base import BaseNode, InputResolver, NodeContext


class TextNode(BaseNode[str, dict[str, str]]):
    """Text prompt node.

    Publishes its configured text under both ``text`` and ``output`` so
    downstream nodes can read either key.
    """

    def get_definition(self) -> NodeDefinition:
        """Get node definition."""
        return NodeDefinition(
            kind=NodeKind.TEXT,
            label="Text Prompt",
            category=NodeCategory.GENERATE,
            description="Static text passed to downstream nodes",
            outputs=[PortSchema(id="text", label="Text", type=PortType.TEXT)],
            aliases=["text-node"],
            initial_data={"label": "Text Prompt"},
        )

    def prepare(self, node: GraphNode, inputs: InputResolver) -> str:
        config = node.config
        text = config.text if isinstance(config, TextNodeData) else None
        return text or "No text"

    async def execute(self, input_data: str, context: NodeContext) -> dict[str, str]:
        context.log(f"Text: {input_data}")
        return {"text": input_data, "output": input_data}


class UploadImageNode(BaseNode[str, dict[str, Any]]):
    """Uploaded image node. Publishes the stored image URL."""

    def get_definition(self) -> NodeDefinition:
        """Get node definition."""
        return NodeDefinition(
            kind=NodeKind.UPLOAD_IMAGE,
            label="Upload Image",
            category=NodeCategory.ASSETS,
            description="Image uploaded by the user",
            outputs=[PortSchema(id="image_url", label="Image", type=PortType.IMAGE)],
            initial_data={"label": "Upload Image"},
        )

    def prepare(self, node: GraphNode, inputs: InputResolver) -> str:
        config = node.config
        return (config.image_url if isinstance(config, UploadImageData) else None) or ""

    async def execute(self, input_data: str, context: NodeContext) -> dict[str, Any]:
        return {"output": input_data}


class UploadVideoNode(BaseNode[str, dict[str, Any]]):
    """Uploaded video node. Publishes the stored video URL."""

    def get_definition(self) -> NodeDefinition:
        """Get node definition."""
        return NodeDefinition(
            kind=NodeKind.UPLOAD_VIDEO,
            label="Upload Video",
            category=NodeCategory.ASSETS,
            description="Video uploaded by the user",
            outputs=[PortSchema(id="video_url", label="Video", type=PortType.VIDEO)],
            initial_data={"label": "Upload Video"},
        )

    def prepare(self, node: GraphNode, inputs: InputResolver) -> str:
        config = node.config
        return (config.video_url if isinstance(config, UploadVideoData) else None) or ""

    async def execute(self, input_data: str, context: NodeContext) -> dict[str, Any]:
        return {"output": input_data}
