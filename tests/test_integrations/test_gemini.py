"""Tests for the Gemini LLM effector."""

import base64
import json

import httpx
import pytest

from nodeflow.integrations.base import LLMError
from nodeflow.integrations.gemini import GeminiClient, resolve_model_name

BASE_URL = "https://gemini.test/v1beta"


def reply(text: str) -> dict:
    return {"candidates": [{"content": {"parts": [{"text": text}]}}]}


class TestResolveModelName:
    """Tests for model name mapping."""

    def test_aliases(self):
        """Test mapping display names and retired models."""
        assert resolve_model_name("Gemini Pro") == "gemini-2.0-flash"
        assert resolve_model_name("gemini-1.5-flash") == "gemini-2.0-flash"

    def test_gemini_ids_pass_through(self):
        """Test that current Gemini ids are kept."""
        assert resolve_model_name("gemini-2.5-pro") == "gemini-2.5-pro"

    def test_fallback(self):
        """Test the default model for missing or foreign names."""
        assert resolve_model_name(None) == "gemini-2.0-flash"
        assert resolve_model_name("gpt-4o", default="gemini-x") == "gemini-x"


class TestGeminiClient:
    """Tests for GeminiClient.generate."""

    @pytest.mark.asyncio
    async def test_missing_api_key(self):
        """Test generating without an API key."""
        client = GeminiClient(api_key="", base_url=BASE_URL)

        with pytest.raises(LLMError) as exc_info:
            await client.generate("hi")

        assert exc_info.value.error_code == "MISSING_CREDENTIAL"

    @pytest.mark.asyncio
    async def test_generate_with_system_prompt_and_images(self):
        """Test the request body with a system prompt and images."""
        requests: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            if request.url.host == "images.test":
                if request.url.path == "/missing.png":
                    return httpx.Response(404)
                return httpx.Response(200, content=b"PNG", headers={"content-type": "image/png"})
            return httpx.Response(200, json=reply("a cat"))

        client = GeminiClient(
            api_key="test-key",
            base_url=BASE_URL,
            transport=httpx.MockTransport(handler),
        )

        result = await client.generate(
            "describe",
            system_prompt="be brief",
            images=["https://images.test/cat.png", "https://images.test/missing.png"],
            model="Gemini Pro",
        )

        assert result.output == "a cat"
        assert result.model == "gemini-2.0-flash"

        api_request = requests[-1]
        assert api_request.url.path == "/v1beta/models/gemini-2.0-flash:generateContent"
        assert api_request.url.params["key"] == "test-key"
        body = json.loads(api_request.content)
        parts = body["contents"][0]["parts"]
        # the unreachable image is skipped
        assert parts == [
            {"text": "describe"},
            {
                "inlineData": {
                    "mimeType": "image/png",
                    "data": base64.b64encode(b"PNG").decode("ascii"),
                }
            },
        ]
        assert body["systemInstruction"] == {"parts": [{"text": "be brief"}]}

    @pytest.mark.asyncio
    async def test_api_error(self):
        """Test an error status from the API."""
        transport = httpx.MockTransport(lambda request: httpx.Response(500, text="overloaded"))
        client = GeminiClient(api_key="test-key", base_url=BASE_URL, transport=transport)

        with pytest.raises(LLMError) as exc_info:
            await client.generate("hi")

        assert exc_info.value.error_code == "API_ERROR"
        assert str(exc_info.value) == "Gemini API Error: 500 - overloaded"

    @pytest.mark.asyncio
    async def test_empty_response(self):
        """Test a response without candidates."""
        transport = httpx.MockTransport(lambda request: httpx.Response(200, json={"candidates": []}))
        client = GeminiClient(api_key="test-key", base_url=BASE_URL, transport=transport)

        result = await client.generate("hi")

        assert result.output == "No response generated"

    @pytest.mark.asyncio
    async def test_network_error(self):
        """Test a connection failure."""
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        client = GeminiClient(api_key="test-key", base_url=BASE_URL, transport=httpx.MockTransport(handler))

        with pytest.raises(LLMError) as exc_info:
            await client.generate("hi")

        assert exc_info.value.error_code == "NETWORK_ERROR"
