from .image import ImageService
from .llm import LLMService

__all__ = ["ImageService", "LLMService"]
