"""Media processing nodes.

Crop an image and extract a frame from a video through the media effector.
Without an upstream asset both nodes fall back to a URL configured on the
node, then to a fixed sample asset, instead of failing.
"""

from dataclasses import dataclass
from typing import Any

from nodeflow.integrations.base import MediaResult
from nodeflow.models.node import (
    CropImageData,
    ExtractFrameData,
    GraphNode,
    NodeCategory,
    NodeDefinition,
    NodeKind,
    PortSchema,
    PortType,
)
from nodeflow.nodes.base import BaseNode, InputResolver, NodeContext, extract_media_url

SAMPLE_IMAGE_URL = "https://picsum.photos/200/300"
SAMPLE_VIDEO_URL = (
    "https://commondatastorage.googleapis.com/gtv-videos-bucket/sample/BigBuckBunny.mp4"
)


@dataclass
class CropInput:
    image_url: str
    width: int = 100
    height: int = 100
    x: int = 0
    y: int = 0


@dataclass
class FrameInput:
    video_url: str
    timestamp: float = 0


def _media_output(result: MediaResult) -> dict[str, Any]:
    return {"outputUrl": result.output_url, "message": result.message}


class CropImageNode(BaseNode[CropInput, MediaResult]):
    """Crop image node."""

    def get_definition(self) -> NodeDefinition:
        """Get node definition."""
        return NodeDefinition(
            kind=NodeKind.CROP_IMAGE,
            label="Crop Image",
            category=NodeCategory.PROCESSING,
            description="Crop an image to a box",
            inputs=[PortSchema(id="image_url", label="Image", type=PortType.IMAGE)],
            outputs=[PortSchema(id="output", label="Cropped", type=PortType.IMAGE)],
            aliases=["crop-image"],
            initial_data={"label": "Crop Image"},
        )

    def prepare(self, node: GraphNode, inputs: InputResolver) -> CropInput:
        config = node.config
        if not isinstance(config, CropImageData):
            config = CropImageData()

        upstream = inputs.get("image_url")
        if upstream is None:
            upstream = inputs.get_any()

        return CropInput(
            image_url=extract_media_url(upstream) or config.image_url or SAMPLE_IMAGE_URL,
            width=int(config.width or 100),
            height=int(config.height or 100),
            x=int(config.x or 0),
            y=int(config.y or 0),
        )

    async def execute(self, input_data: CropInput, context: NodeContext) -> MediaResult:
        context.log(f"Cropping {input_data.image_url}")
        return await context.effectors.media.crop_image(
            image_url=input_data.image_url,
            width=input_data.width,
            height=input_data.height,
            x=input_data.x,
            y=input_data.y,
        )

    def serialize_output(self, output_data: MediaResult) -> dict[str, Any]:
        return _media_output(output_data)


class ExtractFrameNode(BaseNode[FrameInput, MediaResult]):
    """Extract frame node."""

    def get_definition(self) -> NodeDefinition:
        """Get node definition."""
        return NodeDefinition(
            kind=NodeKind.EXTRACT_FRAME,
            label="Extract Frame",
            category=NodeCategory.PROCESSING,
            description="Extract a still frame from a video",
            inputs=[PortSchema(id="video_url", label="Video", type=PortType.VIDEO)],
            outputs=[PortSchema(id="output", label="Image", type=PortType.IMAGE)],
            aliases=["extract-frame"],
            initial_data={"label": "Extract Frame"},
        )

    def prepare(self, node: GraphNode, inputs: InputResolver) -> FrameInput:
        config = node.config
        if not isinstance(config, ExtractFrameData):
            config = ExtractFrameData()

        upstream = inputs.get("video_url")
        if upstream is None:
            upstream = inputs.get_any()

        return FrameInput(
            video_url=extract_media_url(upstream) or config.video_url or SAMPLE_VIDEO_URL,
            timestamp=config.timestamp or 0,
        )

    async def execute(self, input_data: FrameInput, context: NodeContext) -> MediaResult:
        context.log(f"Extracting frame at {input_data.timestamp}s")
        return await context.effectors.media.extract_frame(
            video_url=input_data.video_url,
            timestamp=input_data.timestamp,
        )

    def serialize_output(self, output_data: MediaResult) -> dict[str, Any]:
        return _media_output(output_data)
