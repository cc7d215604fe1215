"""Style and model catalogs.

Both catalogs are fixed, read-only tables built at import time.  Resolution
is a pure lookup that never fails: an unknown or empty key falls back to the
configured default, and an unknown default falls back to the built-in one.

Styles
------
A style controls the tone of the generation prompt through its ``directive``
text.  Styles flagged ``is_fusion`` additionally route the two image
descriptions through the concept synthesis stage, which compresses them into
a single creature concept before prompt assembly.

Models
------
A model names an image-generation provider.  The primary provider (OpenAI)
runs a fixed model; secondary (Replicate) entries carry the provider-specific
model identifier.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Mapping

logger = logging.getLogger(__name__)


class Provider(str, Enum):
    """Image-generation providers known to the service."""

    PRIMARY = "openai"
    SECONDARY = "replicate"


@dataclass(frozen=True)
class StyleDefinition:
    """A named prompt preset.

    Attributes:
        key: Catalog key sent by the client (e.g. ``"toy"``).
        name: Display name.
        directive: Natural-language style directive appended to the prompt.
        is_fusion: Whether the descriptions are synthesized into one concept.
    """

    key: str
    name: str
    directive: str
    is_fusion: bool = False


@dataclass(frozen=True)
class ModelDefinition:
    """An image-generation model selectable by the client.

    Attributes:
        key: Catalog key sent by the client (e.g. ``"flux-schnell"``).
        name: Display name.
        provider: Which generator handles this model.
        provider_model_id: Provider-specific model identifier.  Required for
            :attr:`Provider.SECONDARY`, ignored for :attr:`Provider.PRIMARY`.
    """

    key: str
    name: str
    provider: Provider = Provider.PRIMARY
    provider_model_id: str | None = None

    def __post_init__(self) -> None:
        if self.provider is Provider.SECONDARY and not self.provider_model_id:
            raise ValueError(f"Model '{self.key}' needs a provider_model_id")


DEFAULT_STYLE_KEY = "realistic"
DEFAULT_MODEL_KEY = "dall-e-3"

_STYLE_DEFINITIONS = (
    StyleDefinition(
        key="realistic",
        name="Realistic",
        directive=(
            "Photorealistic, natural lighting, sharp focus, rich detail, "
            "shot on a full-frame camera."
        ),
    ),
    StyleDefinition(
        key="toy",
        name="Toy",
        directive=(
            "Styled as a collectible vinyl toy figure, glossy plastic surfaces, "
            "soft studio lighting, pastel backdrop, playful proportions."
        ),
    ),
    StyleDefinition(
        key="cartoon",
        name="Cartoon",
        directive=(
            "Bold cartoon illustration, clean outlines, flat vibrant colours, "
            "expressive shapes, Saturday-morning animation look."
        ),
    ),
    StyleDefinition(
        key="watercolor",
        name="Watercolor",
        directive=(
            "Loose watercolour painting on textured paper, soft bleeding edges, "
            "translucent washes, gentle palette."
        ),
    ),
    StyleDefinition(
        key="pixel",
        name="Pixel Art",
        directive=(
            "16-bit pixel art, limited palette, crisp pixel edges, retro video "
            "game sprite aesthetic."
        ),
    ),
    StyleDefinition(
        key="fusion",
        name="Fusion Creature",
        directive=(
            "Imaginative creature design, cohesive anatomy, detailed textures, "
            "concept art quality, neutral background."
        ),
        is_fusion=True,
    ),
    StyleDefinition(
        key="creature",
        name="Fantasy Creature",
        directive=(
            "Epic fantasy illustration, dramatic rim lighting, painterly detail, "
            "the creature as the clear hero of the frame."
        ),
        is_fusion=True,
    ),
)

_MODEL_DEFINITIONS = (
    ModelDefinition(key="dall-e-3", name="DALL·E 3", provider=Provider.PRIMARY),
    ModelDefinition(
        key="flux-schnell",
        name="FLUX.1 [schnell]",
        provider=Provider.SECONDARY,
        provider_model_id="black-forest-labs/flux-schnell",
    ),
    ModelDefinition(
        key="flux-dev",
        name="FLUX.1 [dev]",
        provider=Provider.SECONDARY,
        provider_model_id="black-forest-labs/flux-dev",
    ),
    ModelDefinition(
        key="flux-pro",
        name="FLUX 1.1 [pro]",
        provider=Provider.SECONDARY,
        provider_model_id="black-forest-labs/flux-1.1-pro",
    ),
)

STYLES: Mapping[str, StyleDefinition] = MappingProxyType(
    {style.key: style for style in _STYLE_DEFINITIONS}
)
MODELS: Mapping[str, ModelDefinition] = MappingProxyType(
    {model.key: model for model in _MODEL_DEFINITIONS}
)


def resolve_style(key: str | None, default: str | None = None) -> StyleDefinition:
    """Look up a style, falling back to the default style.

    Args:
        key: Requested style key.  ``None`` or an unknown key selects the
            default.
        default: Preferred default key (usually ``config.default_style``).
            Ignored when it is not in the catalog.

    Returns:
        The matching :class:`StyleDefinition`.  Never raises.
    """
    if key and key in STYLES:
        return STYLES[key]
    if key:
        logger.debug(f"Unknown style '{key}', using default")
    if default and default in STYLES:
        return STYLES[default]
    return STYLES[DEFAULT_STYLE_KEY]


def resolve_model(key: str | None, default: str | None = None) -> ModelDefinition:
    """Look up a model, falling back to the default model.

    Args:
        key: Requested model key.  ``None`` or an unknown key selects the
            default.
        default: Preferred default key (usually ``config.default_model``).
            Ignored when it is not in the catalog.

    Returns:
        The matching :class:`ModelDefinition`.  Never raises.
    """
    if key and key in MODELS:
        return MODELS[key]
    if key:
        logger.debug(f"Unknown model '{key}', using default")
    if default and default in MODELS:
        return MODELS[default]
    return MODELS[DEFAULT_MODEL_KEY]


def list_styles() -> list[dict]:
    """Return the style catalog in a JSON-friendly form for the frontend."""
    return [
        {"key": style.key, "name": style.name, "fusion": style.is_fusion}
        for style in STYLES.values()
    ]


def list_models() -> list[dict]:
    """Return the model catalog in a JSON-friendly form for the frontend."""
    return [
        {"key": model.key, "name": model.name, "provider": model.provider.value}
        for model in MODELS.values()
    ]
