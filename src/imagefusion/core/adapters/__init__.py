"""Image-generation provider implementations.

Available providers:
- OpenAIImageGenerator: primary provider (DALL-E 3)
- ReplicateImageGenerator: secondary provider (FLUX family on Replicate)
"""

from .openai_images import OpenAIImageGenerator
from .replicate_images import ReplicateImageGenerator

__all__ = ["OpenAIImageGenerator", "ReplicateImageGenerator"]
