from .base import Provider
from .gemini import GeminiProvider

__all__ = ["GeminiProvider", "Provider"]
