"""Base class and registry for image-generation providers.

Every provider implements :class:`ImageGeneratorBase` — prompt in, one image
reference out — and is registered under its
:class:`~imagefusion.core.catalog.Provider` tag.  The orchestrator resolves
the request's :class:`~imagefusion.core.catalog.ModelDefinition` and asks the
registry for the generator matching ``model.provider``.

The set of providers is closed: one generator per :class:`Provider` value.
There is no fallback between providers; a failing provider fails the request.

Usage Example
-------------
::

    registry = GeneratorRegistry()
    registry.register(OpenAIImageGenerator(config))
    registry.register(ReplicateImageGenerator(config))

    model = resolve_model("flux-schnell")
    result = await registry.get(model.provider).generate(prompt, model)
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass

from .catalog import ModelDefinition, Provider

logger = logging.getLogger(__name__)


@dataclass
class ImageResult:
    """A generated image as returned by a provider.

    Providers return either a URL to the hosted image, raw bytes, or both.

    Attributes:
        url: Provider-hosted URL of the image.
        data: Encoded image bytes.
    """

    url: str | None = None
    data: bytes | None = None

    def __post_init__(self) -> None:
        if not self.url and not self.data:
            raise ValueError("ImageResult needs a url or data")


class ImageGeneratorBase(ABC):
    """Abstract base class for image-generation providers.

    Attributes:
        provider: Provider tag this generator serves.
        name: Human-readable name used in logs.
    """

    provider: Provider
    name: str = "Base Image Generator"

    @abstractmethod
    async def generate(self, prompt: str, model: ModelDefinition) -> ImageResult:
        """Generate exactly one image.

        Args:
            prompt: Assembled generation prompt.
            model: Resolved model definition (carries the provider model id
                for secondary providers).

        Returns:
            The generated image reference.

        Raises:
            BackendError: On any provider error, quota rejection, or empty
                result.
        """


class GeneratorRegistry:
    """Registry mapping providers to generator instances."""

    def __init__(self) -> None:
        self._generators: dict[Provider, ImageGeneratorBase] = {}

    def register(self, generator: ImageGeneratorBase) -> None:
        """Register a generator under its provider tag.

        Args:
            generator: Generator instance.  Replaces any generator already
                registered for the same provider.
        """
        provider = generator.provider
        if provider in self._generators:
            logger.warning(f"Generator for '{provider.value}' is already registered, overwriting")
        self._generators[provider] = generator
        logger.info(f"Registered image generator: {generator.name} ({provider.value})")

    def get(self, provider: Provider) -> ImageGeneratorBase:
        """Return the generator registered for ``provider``.

        Raises:
            KeyError: If no generator is registered for the provider.
        """
        if provider not in self._generators:
            available = ", ".join(self.list_available())
            raise KeyError(
                f"No image generator for provider '{provider.value}'. "
                f"Available providers: {available}"
            )
        return self._generators[provider]

    def list_available(self) -> list[str]:
        """List the registered provider tags."""
        return [provider.value for provider in self._generators]
