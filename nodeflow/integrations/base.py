"""Base classes for effector integrations.

Effectors are the external operations node types delegate to (model
inference, media transforms). The execution engine only depends on the
interfaces defined here.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any


class EffectorError(Exception):
    """Base exception for effector failures."""

    def __init__(
        self,
        message: str,
        error_code: str = "EFFECTOR_ERROR",
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.error_code = error_code
        self.details = details or {}


class LLMError(EffectorError):
    """LLM call failed."""

    def __init__(self, message: str, error_code: str = "LLM_ERROR", **kwargs: Any) -> None:
        super().__init__(message, error_code, **kwargs)


class MediaProcessingError(EffectorError):
    """Media processing call failed."""

    def __init__(self, message: str, error_code: str = "MEDIA_ERROR", **kwargs: Any) -> None:
        super().__init__(message, error_code, **kwargs)


@dataclass
class LLMResult:
    """Text generated by an LLM effector."""

    output: str
    model: str | None = None


@dataclass
class MediaResult:
    """URL of a processed media asset."""

    output_url: str
    message: str = ""


class LLMEffector(ABC):
    """Text generation with optional system prompt and images."""

    @abstractmethod
    async def generate(
        self,
        prompt: str,
        system_prompt: str | None = None,
        images: list[str] | None = None,
        model: str | None = None,
    ) -> LLMResult:
        """Generate a response for the prompt."""
        ...


class MediaEffector(ABC):
    """Image and video transforms."""

    @abstractmethod
    async def crop_image(
        self,
        image_url: str,
        width: int,
        height: int,
        x: int = 0,
        y: int = 0,
    ) -> MediaResult:
        """Crop an image to the given box."""
        ...

    @abstractmethod
    async def extract_frame(self, video_url: str, timestamp: float = 0) -> MediaResult:
        """Extract a single frame from a video at ``timestamp`` seconds."""
        ...


@dataclass
class Effectors:
    """Bundle of effectors available to nodes during a run."""

    llm: LLMEffector
    media: MediaEffector
