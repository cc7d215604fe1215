"""Core functionality for the merge pipeline.

This package provides the building blocks the HTTP layer wires together:

- **Catalogs** (catalog.py): immutable style and model tables with total,
  default-falling resolution
- **Configuration** (config.py): Pydantic Settings, ``IMAGEFUSION_`` prefix
- **Analysis stages** (analysis.py): image description and concept synthesis
- **Prompt assembly** (prompt_builder.py): deterministic prompt templates
- **Generation** (generators.py, adapters/): provider registry with the
  OpenAI (primary) and Replicate (secondary) image generators
- **Storage** (session_store.py, activity_log.py): one directory per merge
  session and the bounded JSON activity log
- **Orchestrator** (pipeline.py): runs one request through every stage
"""

from imagefusion.core.catalog import (
    MODELS,
    STYLES,
    ModelDefinition,
    Provider,
    StyleDefinition,
    resolve_model,
    resolve_style,
)
from imagefusion.core.config import FusionConfig, config
from imagefusion.core.errors import BackendError, PersistenceError, PipelineError, ValidationError
from imagefusion.core.generators import GeneratorRegistry, ImageGeneratorBase, ImageResult

__all__ = [
    "BackendError",
    "FusionConfig",
    "GeneratorRegistry",
    "ImageGeneratorBase",
    "ImageResult",
    "MODELS",
    "ModelDefinition",
    "PersistenceError",
    "PipelineError",
    "Provider",
    "STYLES",
    "StyleDefinition",
    "ValidationError",
    "config",
    "resolve_model",
    "resolve_style",
]
