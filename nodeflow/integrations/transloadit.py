"""Transloadit media effector.

Runs image crops and video frame extraction as Transloadit assemblies and
waits for their completion. When no Transloadit credentials are configured
the client returns placeholder assets so that demo and development runs
still complete.
"""

import asyncio
import hashlib
import hmac
import json
from datetime import datetime, timedelta, timezone
from typing import Any

import httpx
import structlog

from nodeflow.config import settings
from nodeflow.integrations.base import MediaEffector, MediaProcessingError, MediaResult

logger = structlog.get_logger()

ASSEMBLY_COMPLETED = "ASSEMBLY_COMPLETED"
ASSEMBLY_IN_PROGRESS = {"ASSEMBLY_UPLOADING", "ASSEMBLY_EXECUTING", "ASSEMBLY_REPLAYING"}

MOCK_FRAME_URL = "https://via.placeholder.com/640x360.png?text=Frame+Extracted"


class TransloaditClient(MediaEffector):
    """Media effector backed by Transloadit assemblies.

    Example:
        client = TransloaditClient(auth_key="...", auth_secret="...")
        result = await client.crop_image("https://.../cat.png", 200, 200)
        print(result.output_url)
    """

    def __init__(
        self,
        auth_key: str | None = None,
        auth_secret: str | None = None,
        base_url: str | None = None,
        timeout: float | None = None,
        poll_interval: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if auth_secret is None and settings.transloadit_secret is not None:
            auth_secret = settings.transloadit_secret.get_secret_value()
        self._auth_key = auth_key or settings.transloadit_key
        self._auth_secret = auth_secret
        self._base_url = (base_url or settings.transloadit_base_url).rstrip("/")
        self._timeout = timeout or settings.media_timeout
        self._poll_interval = poll_interval or settings.media_poll_interval
        self._transport = transport

    def is_configured(self) -> bool:
        """Check if Transloadit credentials are available."""
        return bool(self._auth_key and self._auth_secret)

    async def crop_image(
        self,
        image_url: str,
        width: int,
        height: int,
        x: int = 0,
        y: int = 0,
    ) -> MediaResult:
        """Crop an image via the /image/resize robot."""
        logger.info("media_crop_starting", image_url=image_url, width=width, height=height, x=x, y=y)

        if not self.is_configured():
            logger.warning("media_credentials_missing_using_mock", operation="crop_image")
            return MediaResult(
                output_url=f"https://placehold.co/{width}x{height}/orange/white?text=Mock+Crop",
                message="Mocked: Transloadit keys missing",
            )

        steps = {
            "imported_image": {
                "robot": "/http/import",
                "url": image_url,
            },
            "cropped": {
                "use": "imported_image",
                "robot": "/image/resize",
                "width": width,
                "height": height,
                "crop": {"x1": x, "y1": y, "x2": x + width, "y2": y + height},
                "resize_strategy": "crop",
            },
        }
        output_url = await self.run_assembly(steps)
        return MediaResult(output_url=output_url, message="Image cropped successfully via Transloadit")

    async def extract_frame(self, video_url: str, timestamp: float = 0) -> MediaResult:
        """Extract one frame via the /video/thumbs robot."""
        logger.info("media_extract_frame_starting", video_url=video_url, timestamp=timestamp)

        if not self.is_configured():
            logger.warning("media_credentials_missing_using_mock", operation="extract_frame")
            return MediaResult(
                output_url=MOCK_FRAME_URL,
                message="Mocked: Transloadit keys missing",
            )

        steps = {
            "imported_video": {
                "robot": "/http/import",
                "url": video_url,
            },
            "extracted_thumb": {
                "use": "imported_video",
                "robot": "/video/thumbs",
                "count": 1,
                "offsets": [timestamp or 0],
            },
        }
        output_url = await self.run_assembly(steps)
        return MediaResult(output_url=output_url, message="Frame extracted successfully via Transloadit")

    def sign_params(self, steps: dict[str, Any]) -> tuple[str, str]:
        """Build the signed ``params`` payload for an assembly.

        Returns:
            Tuple of (params JSON, signature)
        """
        expires = (datetime.now(timezone.utc) + timedelta(hours=1)).strftime("%Y/%m/%d %H:%M:%S+00:00")
        params = json.dumps({"auth": {"key": self._auth_key, "expires": expires}, "steps": steps})
        digest = hmac.new(
            (self._auth_secret or "").encode("utf-8"),
            params.encode("utf-8"),
            hashlib.sha384,
        ).hexdigest()
        return params, f"sha384:{digest}"

    async def run_assembly(self, steps: dict[str, Any]) -> str:
        """Create an assembly, wait for completion and return the result URL.

        Raises:
            MediaProcessingError: On API errors, assembly errors or timeout
        """
        params, signature = self.sign_params(steps)

        async with httpx.AsyncClient(timeout=30.0, transport=self._transport) as client:
            try:
                response = await client.post(
                    f"{self._base_url}/assemblies",
                    data={"params": params, "signature": signature},
                )
                response.raise_for_status()
                assembly = response.json()
                assembly = await self._wait_for_completion(client, assembly)
            except httpx.HTTPStatusError as e:
                raise MediaProcessingError(
                    f"Transloadit API error: {e.response.status_code} - {e.response.text}",
                    error_code="API_ERROR",
                ) from e
            except httpx.RequestError as e:
                raise MediaProcessingError(
                    f"Request failed: {str(e)}",
                    error_code="NETWORK_ERROR",
                ) from e

        return self._last_result_url(assembly)

    async def _wait_for_completion(
        self,
        client: httpx.AsyncClient,
        assembly: dict[str, Any],
    ) -> dict[str, Any]:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self._timeout

        while True:
            if assembly.get("error"):
                raise MediaProcessingError(
                    f"Transloadit Error: {assembly['error']}",
                    error_code="ASSEMBLY_ERROR",
                    details={"message": assembly.get("message")},
                )
            if assembly.get("ok") == ASSEMBLY_COMPLETED:
                return assembly
            if assembly.get("ok") not in ASSEMBLY_IN_PROGRESS:
                raise MediaProcessingError(
                    f"Unexpected assembly state: {assembly.get('ok')}",
                    error_code="ASSEMBLY_ERROR",
                )
            if loop.time() >= deadline:
                raise MediaProcessingError("Transloadit assembly timed out", error_code="TIMEOUT")

            await asyncio.sleep(self._poll_interval)
            response = await client.get(assembly["assembly_ssl_url"])
            response.raise_for_status()
            assembly = response.json()

    @staticmethod
    def _last_result_url(assembly: dict[str, Any]) -> str:
        results = assembly.get("results") or {}
        if not results:
            raise MediaProcessingError("No output generated from Transloadit", error_code="NO_OUTPUT")
        last_step = list(results.keys())[-1]
        files = results[last_step]
        if not files:
            raise MediaProcessingError("No output generated from Transloadit", error_code="NO_OUTPUT")
        return files[0]["ssl_url"]
