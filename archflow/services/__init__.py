"""Remote generation service clients."""

from .base import GenerationGateway  # noqa: F401
from .gemini import GeminiGateway  # noqa: F401

__all__ = ["GenerationGateway", "GeminiGateway"]
