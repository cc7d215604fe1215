"""Configuration management for the Image Fusion service.

All configuration is loaded through Pydantic Settings from environment
variables with the ``IMAGEFUSION_`` prefix, so deployments can be customised
without code changes.

Environment Variable Loading
-----------------------------
Values are resolved in the following priority order:

1. Environment variables (``IMAGEFUSION_*`` prefix)
2. ``.env`` file in the working directory
3. Default values defined in :class:`FusionConfig`

Example ``.env`` file::

    IMAGEFUSION_OPENAI_API_KEY=sk-...
    IMAGEFUSION_REPLICATE_API_TOKEN=r8_...
    IMAGEFUSION_DEFAULT_STYLE=toy
    IMAGEFUSION_ADMIN_PASSWORD=change-me

Backend credentials are optional at start-up.  The OpenAI and Replicate
clients are created lazily on first use, and a missing credential surfaces as
a :class:`~imagefusion.core.errors.BackendError` for that request only.

Directory Management
--------------------
The configuration creates the following directories on initialisation:

- ``uploads_dir``: one sub-directory per merge session (source images,
  result image, ``metadata.json``).  Served at ``/uploads``.
- ``data_dir``: holds ``activity_log.json``.

Usage Example
-------------
::

    from imagefusion.core.config import config

    print(config.default_style)
    print(config.activity_log_path)
"""

from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class FusionConfig(BaseSettings):
    """Main configuration for the Image Fusion service.

    Attributes
    ----------
    Backend credentials:
        openai_api_key : str | None
            API key for vision, concept synthesis and DALL-E generation.
            When unset the OpenAI SDK falls back to ``OPENAI_API_KEY``.
        replicate_api_token : str | None
            API token for the secondary (Replicate) image backend.

    Pipeline settings:
        vision_model, concept_model : str
            Chat models used for image description and concept synthesis.
        description_max_tokens, concept_max_tokens : int
            Output caps for the two text stages.
        concept_temperature : float
            Sampling temperature for concept synthesis (kept high so repeated
            merges of the same images produce different creatures).
        primary_image_model, image_size, image_quality : str
            Fixed parameters of the primary image backend.
        default_style, default_model : str
            Catalog keys used when a request names no (or an unknown) key.

    Admin:
        admin_username, admin_password : str
            HTTP Basic credentials for ``/api/admin``.  Admin routes are
            disabled while ``admin_password`` is unset.

    Paths and storage:
        uploads_dir, data_dir : Path
        log_max_entries : int
            Activity log cap; the oldest entries are evicted first.
        download_timeout : float
            Timeout (seconds) for fetching provider-hosted result images.

    Server:
        server_host, server_port, log_level, forwarded_allow_ips (comma-separated
        proxy addresses whose X-Forwarded-For header uvicorn trusts)
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="IMAGEFUSION_",
        case_sensitive=False,
        extra="ignore",
    )

    # Backend credentials
    openai_api_key: str | None = Field(
        default=None,
        description="OpenAI API key (falls back to OPENAI_API_KEY when unset)",
    )
    replicate_api_token: str | None = Field(
        default=None,
        description="Replicate API token for the secondary image backend",
    )

    # Description and concept stages
    vision_model: str = Field(
        default="gpt-4o",
        description="Vision-capable chat model used to describe input images",
    )
    concept_model: str = Field(
        default="gpt-4o",
        description="Chat model used to synthesize the fusion concept",
    )
    description_max_tokens: int = Field(default=150, ge=16, le=1024)
    concept_max_tokens: int = Field(default=60, ge=8, le=512)
    concept_temperature: float = Field(default=1.2, ge=0.0, le=2.0)

    # Primary image backend
    primary_image_model: str = Field(
        default="dall-e-3",
        description="OpenAI image model used by the primary provider",
    )
    image_size: str = Field(default="1024x1024")
    image_quality: Literal["standard", "hd"] = Field(default="standard")

    # Catalog defaults
    default_style: str = Field(
        default="realistic",
        description="Style key used when a request omits or misspells the style",
    )
    default_model: str = Field(
        default="dall-e-3",
        description="Model key used when a request omits or misspells the model",
    )

    # Admin credentials
    admin_username: str = Field(default="admin")
    admin_password: str | None = Field(
        default=None,
        description="Admin password; admin routes return 503 while unset",
    )

    # Paths and storage
    uploads_dir: Path = Field(
        default=Path("uploads"),
        description="Directory holding one sub-directory per merge session",
    )
    data_dir: Path = Field(
        default=Path("data"),
        description="Directory holding the activity log",
    )
    log_max_entries: int = Field(default=1000, ge=1)
    download_timeout: float = Field(default=60.0, gt=0)

    # Server settings
    server_host: str = Field(default="0.0.0.0")
    server_port: int = Field(default=3100, ge=1024, le=65535)
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(default="INFO")
    forwarded_allow_ips: str = Field(
        default="127.0.0.1",
        description="Proxy addresses allowed to set the client address via X-Forwarded-For",
    )

    def __init__(self, **kwargs):
        """Initialize configuration and create the storage directories.

        Args:
            **kwargs: Configuration overrides (typically used by tests)
        """
        super().__init__(**kwargs)

        self.uploads_dir.mkdir(parents=True, exist_ok=True)
        self.data_dir.mkdir(parents=True, exist_ok=True)

    @property
    def activity_log_path(self) -> Path:
        """Path of the JSON activity log file."""
        return self.data_dir / "activity_log.json"

    @property
    def admin_enabled(self) -> bool:
        """Whether admin credentials are configured."""
        return bool(self.admin_password)


# Global configuration instance, loaded from IMAGEFUSION_* variables and .env.
config = FusionConfig()
