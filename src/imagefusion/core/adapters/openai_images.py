"""Primary image provider: OpenAI image generation (DALL-E 3).

The primary provider runs one fixed model at a fixed output size and quality
tier taken from :class:`~imagefusion.core.config.FusionConfig`.  The model
definition passed in only selects this provider; its ``provider_model_id`` is
ignored.

DALL-E 3 returns a short-lived hosted URL by default.  When the API answers
with ``b64_json`` instead (some deployments force it), the bytes are decoded
and returned as image data.
"""

from __future__ import annotations

import base64
import logging

import openai
from openai import AsyncOpenAI

from ..catalog import ModelDefinition, Provider
from ..config import FusionConfig
from ..errors import BackendError
from ..generators import ImageGeneratorBase, ImageResult

logger = logging.getLogger(__name__)


class OpenAIImageGenerator(ImageGeneratorBase):
    """Generate images with the OpenAI Images API."""

    provider = Provider.PRIMARY
    name = "OpenAI Images"

    def __init__(self, config: FusionConfig, client: AsyncOpenAI | None = None) -> None:
        """Initialize the generator.

        Args:
            config: Supplies the API key, image model, size and quality.
            client: Pre-built client (tests); created lazily when omitted.
        """
        self.api_key = config.openai_api_key
        self.model_name = config.primary_image_model
        self.size = config.image_size
        self.quality = config.image_quality
        self._client = client

    @property
    def client(self) -> AsyncOpenAI:
        if self._client is None:
            try:
                self._client = AsyncOpenAI(api_key=self.api_key)
            except openai.OpenAIError as e:
                raise BackendError(f"OpenAI client unavailable: {e}") from e
        return self._client

    async def generate(self, prompt: str, model: ModelDefinition) -> ImageResult:
        client = self.client
        logger.info(f"Generating image with {self.model_name} ({self.size}, {self.quality})")
        try:
            response = await client.images.generate(
                model=self.model_name,
                prompt=prompt,
                n=1,
                size=self.size,
                quality=self.quality,
            )
        except openai.OpenAIError as e:
            logger.error(f"OpenAI image generation failed: {e}")
            raise BackendError(str(e)) from e

        if not response.data:
            raise BackendError(f"{self.model_name} returned no images")

        image = response.data[0]
        if image.url:
            return ImageResult(url=image.url)
        if image.b64_json:
            return ImageResult(data=base64.b64decode(image.b64_json))

        raise BackendError(f"{self.model_name} returned an image without url or data")
