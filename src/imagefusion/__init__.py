"""Image Fusion - merge two images into one generated artwork."""

__version__ = "0.3.0"

from imagefusion.core.catalog import MODELS, STYLES, resolve_model, resolve_style
from imagefusion.core.config import FusionConfig, config

__all__ = [
    "FusionConfig",
    "MODELS",
    "STYLES",
    "config",
    "resolve_model",
    "resolve_style",
]
