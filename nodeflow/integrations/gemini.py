"""Gemini LLM effector.

Calls the Google Generative Language API for text generation, with an
optional system instruction and inline images.
"""

import base64
from typing import Any

import httpx
import structlog

from nodeflow.config import settings
from nodeflow.integrations.base import LLMEffector, LLMError, LLMResult

logger = structlog.get_logger()

DEFAULT_MODEL = "gemini-2.0-flash"

# Display names and retired model ids mapped to a supported model
MODEL_ALIASES: dict[str, str] = {
    "Gemini 2.0 Flash": "gemini-2.0-flash",
    "gemini-2.0-flash": "gemini-2.0-flash",
    "Gemini 1.5 Flash": "gemini-2.0-flash",
    "gemini-1.5-flash": "gemini-2.0-flash",
    "Gemini Pro": "gemini-2.0-flash",
    "gemini-pro": "gemini-2.0-flash",
}


def resolve_model_name(model: str | None, default: str = DEFAULT_MODEL) -> str:
    """Map a user-facing model name to an API model id.

    Unknown names that look like Gemini ids pass through; anything else
    falls back to ``default``.
    """
    if not model:
        return default
    name = model.strip()
    if name in MODEL_ALIASES:
        return MODEL_ALIASES[name]
    if name.startswith("gemini-"):
        return name
    return default


class GeminiClient(LLMEffector):
    """LLM effector backed by the Gemini ``generateContent`` endpoint.

    Example:
        client = GeminiClient(api_key="...")
        result = await client.generate("Describe this", images=["https://..."])
        print(result.output)
    """

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        default_model: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            api_key: API key (defaults to settings.gemini_api_key)
            base_url: API base URL (defaults to settings.gemini_base_url)
            default_model: Model used when none is requested
            timeout: Request timeout in seconds
            transport: Optional httpx transport (used by tests)
        """
        if api_key is None and settings.gemini_api_key is not None:
            api_key = settings.gemini_api_key.get_secret_value()
        self._api_key = api_key
        self._base_url = (base_url or settings.gemini_base_url).rstrip("/")
        self._default_model = resolve_model_name(default_model or settings.default_llm_model)
        self._timeout = timeout or settings.llm_timeout
        self._transport = transport

    async def generate(
        self,
        prompt: str,
        system_prompt: str | None = None,
        images: list[str] | None = None,
        model: str | None = None,
    ) -> LLMResult:
        """Generate text with Gemini.

        Images that cannot be fetched are skipped with a logged error
        rather than failing the call.

        Raises:
            LLMError: If the API key is missing or the API call fails
        """
        if not self._api_key:
            raise LLMError("GEMINI_API_KEY not set", error_code="MISSING_CREDENTIAL")

        api_model = resolve_model_name(model, self._default_model)
        logger.info(
            "llm_request_starting",
            requested_model=model,
            model=api_model,
            image_count=len(images or []),
            has_system_prompt=bool(system_prompt),
        )

        async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
            parts: list[dict[str, Any]] = []
            if prompt:
                parts.append({"text": prompt})
            for image_url in images or []:
                inline = await self._fetch_inline_image(client, image_url)
                if inline is not None:
                    parts.append(inline)

            body: dict[str, Any] = {"contents": [{"parts": parts}]}
            if system_prompt:
                body["systemInstruction"] = {"parts": [{"text": system_prompt}]}

            try:
                response = await client.post(
                    f"{self._base_url}/models/{api_model}:generateContent",
                    params={"key": self._api_key},
                    json=body,
                )
                response.raise_for_status()
            except httpx.HTTPStatusError as e:
                logger.error(
                    "llm_api_error",
                    status=e.response.status_code,
                    body=e.response.text[:500],
                )
                raise LLMError(
                    f"Gemini API Error: {e.response.status_code} - {e.response.text}",
                    error_code="API_ERROR",
                ) from e
            except httpx.RequestError as e:
                raise LLMError(
                    f"Request failed: {str(e)}",
                    error_code="NETWORK_ERROR",
                ) from e

        return LLMResult(output=self._extract_text(response.json()), model=api_model)

    async def _fetch_inline_image(
        self,
        client: httpx.AsyncClient,
        image_url: str,
    ) -> dict[str, Any] | None:
        """Download an image and wrap it as an inline data part."""
        try:
            response = await client.get(image_url, follow_redirects=True)
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error("llm_image_fetch_failed", image_url=image_url, error=str(e))
            return None

        mime_type = response.headers.get("content-type", "image/jpeg").split(";")[0]
        return {
            "inlineData": {
                "mimeType": mime_type,
                "data": base64.b64encode(response.content).decode("ascii"),
            }
        }

    @staticmethod
    def _extract_text(data: dict[str, Any]) -> str:
        try:
            text = data["candidates"][0]["content"]["parts"][0]["text"]
        except (KeyError, IndexError, TypeError):
            return "No response generated"
        return text or "No response generated"
