"""Run LLM node.

Sends a user message, an optional system prompt and any number of images
to the LLM effector.
"""

from dataclasses import dataclass, field

from nodeflow.models.node import (
    GraphNode,
    LLMNodeData,
    NodeCategory,
    NodeDefinition,
    NodeKind,
    PortSchema,
    PortType,
)
from nodeflow.nodes.base import (
    BaseNode,
    InputResolver,
    NodeContext,
    extract_media_urls,
    extract_text,
)

DEFAULT_USER_MESSAGE = "Hello AI"
DEFAULT_MODEL = "gemini-2.0-flash"

SYSTEM_PROMPT_PORT = "system_prompt"
USER_MESSAGE_PORT = "user_message"
IMAGES_PORT = "images"


@dataclass
class LLMInput:
    """Prepared input for the LLM node."""

    prompt: str
    system_prompt: str | None = None
    images: list[str] = field(default_factory=list)
    model: str = DEFAULT_MODEL


class RunLLMNode(BaseNode[LLMInput, dict[str, str]]):
    """LLM node.

    Input resolution:
    - system prompt: connected text, else the node's ``systemPrompt``
    - user message: text on ``user_message`` or on any edge not bound to
      another port, else the node's ``prompt``, else "Hello AI"
    - images: every edge on ``images`` in edge order, lists flattened

    A connected producer that has no output yet falls through to the
    node-configured literal, same as an unconnected port.
    """

    def get_definition(self) -> NodeDefinition:
        """Get node definition."""
        return NodeDefinition(
            kind=NodeKind.LLM,
            label="Run LLM",
            category=NodeCategory.MODELS,
            description="Generate text with a multimodal language model",
            inputs=[
                PortSchema(
                    id=SYSTEM_PROMPT_PORT,
                    label="System Prompt",
                    type=PortType.TEXT,
                    tooltip_type="text, optional",
                ),
                PortSchema(
                    id=USER_MESSAGE_PORT,
                    label="User Message",
                    type=PortType.TEXT,
                    tooltip_type="text, required",
                ),
                PortSchema(
                    id=IMAGES_PORT,
                    label="Images",
                    type=PortType.IMAGE,
                    tooltip_type="image, optional, multiple",
                ),
            ],
            outputs=[PortSchema(id="output", label="Response", type=PortType.TEXT)],
            aliases=["llm-node", "run-all-llm"],
            initial_data={"label": "Run LLM", "output": "", "model": DEFAULT_MODEL},
        )

    def prepare(self, node: GraphNode, inputs: InputResolver) -> LLMInput:
        config = node.config
        if not isinstance(config, LLMNodeData):
            config = LLMNodeData()

        system_prompt = extract_text(inputs.get(SYSTEM_PROMPT_PORT)) or config.system_prompt

        user_input = inputs.get(USER_MESSAGE_PORT)
        if user_input is None:
            user_input = inputs.get_unclaimed([SYSTEM_PROMPT_PORT, IMAGES_PORT])
        prompt = extract_text(user_input) or config.prompt or DEFAULT_USER_MESSAGE

        images: list[str] = []
        for value in inputs.get_all(IMAGES_PORT):
            images.extend(extract_media_urls(value))

        return LLMInput(
            prompt=prompt,
            system_prompt=system_prompt or None,
            images=images,
            model=config.model or DEFAULT_MODEL,
        )

    async def execute(self, input_data: LLMInput, context: NodeContext) -> dict[str, str]:
        context.log(f"Model: {input_data.model}, images: {len(input_data.images)}")
        result = await context.effectors.llm.generate(
            prompt=input_data.prompt,
            system_prompt=input_data.system_prompt,
            images=input_data.images,
            model=input_data.model,
        )
        return {"output": result.output}
