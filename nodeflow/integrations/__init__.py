"""Effector integrations - external operations invoked by nodes."""

from nodeflow.integrations.base import (
    EffectorError,
    Effectors,
    LLMEffector,
    LLMError,
    LLMResult,
    MediaEffector,
    MediaProcessingError,
    MediaResult,
)
from nodeflow.integrations.gemini import GeminiClient
from nodeflow.integrations.transloadit import TransloaditClient


def build_effectors() -> Effectors:
    """Create the default effector bundle from application settings."""
    return Effectors(llm=GeminiClient(), media=TransloaditClient())


__all__ = [
    "EffectorError",
    "Effectors",
    "GeminiClient",
    "LLMEffector",
    "LLMError",
    "LLMResult",
    "MediaEffector",
    "MediaProcessingError",
    "MediaResult",
    "TransloaditClient",
    "build_effectors",
]
