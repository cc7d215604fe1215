"""Secondary image provider: models hosted on Replicate.

The model to run comes from the resolved model definition's
``provider_model_id`` (e.g. ``black-forest-labs/flux-schnell``).  Only the
prompt is sent; each model's own defaults decide size and step count.

Replicate returns different output shapes depending on model and client
version:

- a list of outputs (FLUX models return a one-element list);
- ``FileOutput`` objects exposing ``url`` and ``read()``;
- plain URL strings (legacy clients);
- raw bytes.

:func:`_to_image_result` normalises all of them to an
:class:`~imagefusion.core.generators.ImageResult`.
"""

from __future__ import annotations

import logging
from typing import Any

import replicate
from replicate.exceptions import ReplicateError

from ..catalog import ModelDefinition, Provider
from ..config import FusionConfig
from ..errors import BackendError
from ..generators import ImageGeneratorBase, ImageResult

logger = logging.getLogger(__name__)


def _to_image_result(output: Any) -> ImageResult | None:
    """Normalise a Replicate output into an image result, or ``None``."""
    if isinstance(output, (list, tuple)):
        if not output:
            return None
        output = output[0]

    if output is None:
        return None
    if isinstance(output, (bytes, bytearray)):
        return ImageResult(data=bytes(output)) if output else None
    if isinstance(output, str):
        return ImageResult(url=output) if output else None

    # replicate.helpers.FileOutput
    url = getattr(output, "url", None)
    if url:
        return ImageResult(url=str(url))
    return None


class ReplicateImageGenerator(ImageGeneratorBase):
    """Generate images with Replicate-hosted models."""

    provider = Provider.SECONDARY
    name = "Replicate"

    def __init__(self, config: FusionConfig, client: replicate.Client | None = None) -> None:
        """Initialize the generator.

        Args:
            config: Supplies the Replicate API token.
            client: Pre-built client (tests); created lazily when omitted.
        """
        self.api_token = config.replicate_api_token
        self._client = client

    @property
    def client(self) -> replicate.Client:
        if self._client is None:
            if not self.api_token:
                raise BackendError("Replicate API token is not configured")
            self._client = replicate.Client(api_token=self.api_token)
        return self._client

    async def generate(self, prompt: str, model: ModelDefinition) -> ImageResult:
        if not model.provider_model_id:
            raise BackendError(f"Model '{model.key}' has no Replicate model id")

        client = self.client
        logger.info(f"Generating image with Replicate model {model.provider_model_id}")
        try:
            output = await client.async_run(
                model.provider_model_id,
                input={"prompt": prompt},
            )
        except ReplicateError as e:
            logger.error(f"Replicate generation failed: {e}")
            raise BackendError(str(e)) from e
        except Exception as e:
            # Transport errors surface as httpx exceptions.
            logger.error(f"Replicate request failed: {e}")
            raise BackendError(f"Replicate request failed: {e}") from e

        result = _to_image_result(output)
        if result is None:
            raise BackendError(f"{model.provider_model_id} returned no images")
        return result
