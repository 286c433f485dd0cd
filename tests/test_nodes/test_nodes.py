"""Tests for built-in node behaviors and the node registry."""

from typing import Any

import pytest

from nodeflow.models.node import GraphEdge, GraphNode, NodeCategory, NodeKind
from nodeflow.nodes.base import (
    InputResolver,
    NodeContext,
    NodeExecutionError,
    extract_media_urls,
    extract_text,
)
from nodeflow.nodes.llm import RunLLMNode
from nodeflow.nodes.media import (
    SAMPLE_IMAGE_URL,
    SAMPLE_VIDEO_URL,
    CropImageNode,
    ExtractFrameNode,
)
from nodeflow.nodes.output import OutputNode, UnknownNode
from nodeflow.nodes.registry import NodeRegistry, NodeRegistryError, get_node_registry
from nodeflow.nodes.sources import TextNode, UploadImageNode, UploadVideoNode
from tests.fakes import FakeMedia, make_effectors


def resolver(
    node_id: str,
    edges: list[GraphEdge] | None = None,
    outputs: dict[str, Any] | None = None,
) -> InputResolver:
    return InputResolver(node_id, edges or [], outputs or {})


def context_for(node_id: str, effectors) -> NodeContext:
    return NodeContext(execution_id="exec-1", node_id=node_id, effectors=effectors)


class TestExtractors:
    """Tests for upstream output unwrapping."""

    def test_extract_text(self):
        """Test text extraction from upstream outputs."""
        assert extract_text("hi") == "hi"
        assert extract_text({"text": "a", "output": "b"}) == "a"
        assert extract_text({"output": "b"}) == "b"
        assert extract_text({"outputUrl": "x"}) is None
        assert extract_text("") is None
        assert extract_text(None) is None

    def test_extract_media_urls(self):
        """Test media URL extraction from upstream outputs."""
        assert extract_media_urls("https://a") == ["https://a"]
        assert extract_media_urls({"outputUrl": "https://a", "output": "https://b"}) == ["https://a"]
        assert extract_media_urls({"image_url": "https://i"}) == ["https://i"]
        assert extract_media_urls([{"output": "https://a"}, "https://b"]) == ["https://a", "https://b"]
        assert extract_media_urls({"output": ["https://a", "https://b"]}) == ["https://a", "https://b"]
        assert extract_media_urls({"message": "x"}) == []
        assert extract_media_urls(None) == []


class TestInputResolver:
    """Tests for edge/port input lookup."""

    def test_port_lookup_and_missing_producer(self):
        """Test port lookup and a producer with no output yet."""
        edges = [
            GraphEdge("a", "n", "text", "user_message"),
            GraphEdge("b", "n", "output", "images"),
            GraphEdge("c", "n", "output", "images"),
        ]
        inputs = resolver("n", edges, {"a": {"text": "hi"}, "c": {"output": "u"}})

        assert inputs.get("user_message") == {"text": "hi"}
        assert inputs.get("system_prompt") is None
        assert inputs.get_all("images") == [None, {"output": "u"}]
        assert inputs.get_any() == {"text": "hi"}

    def test_unclaimed_edge(self):
        """Test finding an edge no port claimed."""
        edges = [
            GraphEdge("s", "n", "text", "system_prompt"),
            GraphEdge("a", "n", "text", None),
        ]
        inputs = resolver("n", edges, {"s": "sys", "a": "user"})

        assert inputs.get_unclaimed(["system_prompt", "images"]) == "user"

    def test_ignores_edges_to_other_nodes(self):
        """Test that edges into other nodes are ignored."""
        inputs = resolver("n", [GraphEdge("a", "other", None, "input")], {"a": 1})
        assert inputs.incoming == []
        assert inputs.get_any() is None


class TestSourceNodes:
    """Tests for text and upload nodes."""

    @pytest.mark.asyncio
    async def test_text_node(self):
        """Test the text source node."""
        node = GraphNode(id="t", type="textNode", data={"text": "hello"})
        output = await TextNode().run(node, resolver("t"), context_for("t", make_effectors()))

        assert output == {"text": "hello", "output": "hello"}

    @pytest.mark.asyncio
    async def test_text_node_default(self):
        """Test the text source node without text."""
        node = GraphNode(id="t", type="text-node", data={})
        output = await TextNode().run(node, resolver("t"), context_for("t", make_effectors()))

        assert output["text"] == "No text"

    @pytest.mark.asyncio
    async def test_upload_nodes(self):
        """Test the image and video upload nodes."""
        effectors = make_effectors()
        image = GraphNode(id="i", type="uploadImage", data={"imageUrl": "https://img"})
        video = GraphNode(id="v", type="uploadVideo", data={})

        assert await UploadImageNode().run(image, resolver("i"), context_for("i", effectors)) == {
            "output": "https://img"
        }
        assert await UploadVideoNode().run(video, resolver("v"), context_for("v", effectors)) == {
            "output": ""
        }


class TestRunLLMNode:
    """Tests for LLM input resolution."""

    @pytest.mark.asyncio
    async def test_connected_inputs(self):
        """Test that connected inputs override configured prompts."""
        effectors = make_effectors()
        node = GraphNode(id="l", type="runAnyLLM", data={"model": "gemini-2.0-flash"})
        edges = [
            GraphEdge("sys", "l", "text", "system_prompt"),
            GraphEdge("msg", "l", "text", "user_message"),
            GraphEdge("img1", "l", "output", "images"),
            GraphEdge("img2", "l", "output", "images"),
        ]
        outputs = {
            "sys": {"text": "be brief", "output": "be brief"},
            "msg": {"text": "describe", "output": "describe"},
            "img1": {"output": "https://a.png"},
            "img2": {"outputUrl": "https://b.png", "message": "Cropped"},
        }

        output = await RunLLMNode().run(node, resolver("l", edges, outputs), context_for("l", effectors))

        assert output == {"output": "echo: describe"}
        assert effectors.llm.calls == [
            {
                "prompt": "describe",
                "system_prompt": "be brief",
                "images": ["https://a.png", "https://b.png"],
                "model": "gemini-2.0-flash",
            }
        ]

    @pytest.mark.asyncio
    async def test_config_fallbacks(self):
        """Test falling back to configured prompts."""
        effectors = make_effectors()
        node = GraphNode(
            id="l",
            type="llm-node",
            data={"prompt": "configured", "systemPrompt": "sys"},
        )

        await RunLLMNode().run(node, resolver("l"), context_for("l", effectors))

        call = effectors.llm.calls[0]
        assert call["prompt"] == "configured"
        assert call["system_prompt"] == "sys"
        assert call["model"] == "gemini-2.0-flash"
        assert call["images"] == []

    @pytest.mark.asyncio
    async def test_default_user_message(self):
        """Test the default prompt when nothing is set."""
        effectors = make_effectors()
        node = GraphNode(id="l", type="runAnyLLM", data={})

        await RunLLMNode().run(node, resolver("l"), context_for("l", effectors))

        assert effectors.llm.calls[0]["prompt"] == "Hello AI"
        assert effectors.llm.calls[0]["system_prompt"] is None

    @pytest.mark.asyncio
    async def test_unlabeled_edge_is_user_message(self):
        """Test that an edge without a handle feeds the prompt."""
        effectors = make_effectors()
        node = GraphNode(id="l", type="runAnyLLM", data={"prompt": "ignored"})
        edges = [GraphEdge("t", "l", "text", None)]

        await RunLLMNode().run(
            node,
            resolver("l", edges, {"t": {"text": "from edge"}}),
            context_for("l", effectors),
        )

        assert effectors.llm.calls[0]["prompt"] == "from edge"

    @pytest.mark.asyncio
    async def test_effector_error_becomes_node_error(self):
        """Test that an LLM error fails the node."""
        effectors = make_effectors(fail_on="boom")
        node = GraphNode(id="l", type="runAnyLLM", data={"prompt": "boom"})

        with pytest.raises(NodeExecutionError) as exc_info:
            await RunLLMNode().run(node, resolver("l"), context_for("l", effectors))

        assert exc_info.value.node_id == "l"
        assert exc_info.value.error_code == "LLM_ERROR"


class TestMediaNodes:
    """Tests for crop and frame extraction nodes."""

    @pytest.mark.asyncio
    async def test_crop_uses_upstream_image(self):
        """Test cropping an upstream image."""
        effectors = make_effectors()
        node = GraphNode(
            id="c",
            type="cropImage",
            data={"width": "50", "height": 40, "x": 5},
        )
        edges = [GraphEdge("i", "c", "image_url", "image_url")]

        output = await CropImageNode().run(
            node,
            resolver("c", edges, {"i": {"output": "https://img"}}),
            context_for("c", effectors),
        )

        assert output == {"outputUrl": "https://img#crop=5,0,50x40", "message": "Cropped"}

    @pytest.mark.asyncio
    async def test_crop_falls_back_to_sample(self):
        """Test cropping the sample image when nothing is connected."""
        effectors = make_effectors()
        node = GraphNode(id="c", type="crop-image", data={})

        output = await CropImageNode().run(node, resolver("c"), context_for("c", effectors))

        assert output["outputUrl"] == f"{SAMPLE_IMAGE_URL}#crop=0,0,100x100"

    @pytest.mark.asyncio
    async def test_crop_configured_url(self):
        """Test cropping a configured image URL."""
        effectors = make_effectors()
        node = GraphNode(id="c", type="cropImage", data={"imageUrl": "https://cfg"})

        await CropImageNode().run(node, resolver("c"), context_for("c", effectors))

        assert effectors.media.calls[0]["image_url"] == "https://cfg"

    @pytest.mark.asyncio
    async def test_extract_frame(self):
        """Test extracting a frame from an upstream video."""
        effectors = make_effectors()
        node = GraphNode(id="f", type="extractFrame", data={"timestamp": "2.5"})
        edges = [GraphEdge("v", "f", "video_url", "video_url")]

        output = await ExtractFrameNode().run(
            node,
            resolver("f", edges, {"v": {"output": "https://vid"}}),
            context_for("f", effectors),
        )

        assert output["outputUrl"] == "https://vid#t=2.5"

    @pytest.mark.asyncio
    async def test_extract_frame_sample_video(self):
        """Test extracting a frame from the sample video."""
        effectors = make_effectors()
        node = GraphNode(id="f", type="extractFrame", data={})

        await ExtractFrameNode().run(node, resolver("f"), context_for("f", effectors))

        assert effectors.media.calls[0]["video_url"] == SAMPLE_VIDEO_URL
        assert effectors.media.calls[0]["timestamp"] == 0

    @pytest.mark.asyncio
    async def test_media_failure(self):
        """Test that a media error fails the node."""
        effectors = make_effectors()
        effectors.media = FakeMedia(fail=True)
        node = GraphNode(id="c", type="cropImage", data={})

        with pytest.raises(NodeExecutionError) as exc_info:
            await CropImageNode().run(node, resolver("c"), context_for("c", effectors))

        assert exc_info.value.error_code == "MEDIA_ERROR"


class TestOutputNodes:
    """Tests for output and unknown nodes."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "upstream, expected",
        [
            ({"output": "answer", "text": "t"}, "answer"),
            ({"outputUrl": "https://x", "message": "Cropped"}, "https://x"),
            ({"image_url": "https://i"}, "https://i"),
            ({"text": "t"}, "t"),
            ({"message": "m"}, {"message": "m"}),
            ("plain", "plain"),
            (None, {"message": "No input received"}),
        ],
    )
    async def test_output_unwrapping(self, upstream, expected):
        """Test how the output node unwraps upstream values."""
        node = GraphNode(id="o", type="outputNode")
        edges = [GraphEdge("u", "o", "output", "input")]
        outputs = {} if upstream is None else {"u": upstream}

        output = await OutputNode().run(
            node,
            resolver("o", edges, outputs),
            context_for("o", make_effectors()),
        )

        assert output == expected

    @pytest.mark.asyncio
    async def test_unknown_node(self):
        """Test the placeholder output of an unknown node."""
        node = GraphNode(id="x", type="mystery")
        context = context_for("x", make_effectors())

        output = await UnknownNode().run(node, resolver("x"), context)

        assert output == {"message": "Unknown node type"}
        assert context.logs == ["Unknown node type: mystery"]


class TestNodeRegistry:
    """Tests for NodeRegistry."""

    def test_load_builtin_nodes(self):
        """Test loading the builtin nodes."""
        registry = NodeRegistry()
        count = registry.load_builtin_nodes()

        assert count == 7
        assert len(registry.list_all()) == count

    def test_resolve_aliases(self, registry):
        """Test resolving legacy node type spellings."""
        assert isinstance(registry.get("text-node"), TextNode)
        assert isinstance(registry.get("run-all-llm"), RunLLMNode)
        assert isinstance(registry.get("output-node"), OutputNode)

    def test_resolve_falls_back_to_unknown(self, registry):
        """Test that resolve falls back to the unknown node."""
        assert registry.get("mystery") is None
        assert isinstance(registry.resolve("mystery"), UnknownNode)
        assert isinstance(registry.resolve(""), UnknownNode)

    def test_duplicate_registration(self, registry):
        """Test that a node type cannot be registered twice."""
        with pytest.raises(NodeRegistryError):
            registry.register(TextNode)

    def test_unknown_kind_cannot_register(self):
        """Test that the unknown kind cannot be registered."""
        with pytest.raises(NodeRegistryError):
            NodeRegistry().register(UnknownNode)

    def test_unregister(self, registry):
        """Test unregistering a node type."""
        registry.unregister("text-node")
        assert registry.get("textNode") is None

    def test_catalog_groups_by_category(self, registry):
        """Test that the catalog groups nodes by category."""
        catalog = registry.get_catalog()

        assert [d["type"] for d in catalog["assets"]] == ["uploadImage", "uploadVideo"]
        assert [d["type"] for d in catalog["processing"]] == ["cropImage", "extractFrame"]
        llm = catalog["models"][0]
        assert [p["id"] for p in llm["inputs"]] == ["system_prompt", "user_message", "images"]

    def test_list_by_category(self, registry):
        """Test listing nodes of one category."""
        outputs = registry.list_by_category(NodeCategory.OUTPUT)
        assert [d.kind for d in outputs] == [NodeKind.OUTPUT]

    def test_singleton(self):
        """Test that the global registry is shared."""
        assert get_node_registry() is get_node_registry()
