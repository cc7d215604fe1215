"""Tests for imagefusion.core.config — configuration management.

Tests cover:
- Default values for the pipeline, admin and server settings.
- Environment variable overrides via the IMAGEFUSION_ prefix.
- Automatic directory creation on initialisation.
- Pydantic validation constraints (port range, temperature, literals).
"""

from __future__ import annotations

from pathlib import Path

import pytest

from imagefusion.core.config import FusionConfig


def _config(temp_dir: Path, **overrides) -> FusionConfig:
    return FusionConfig(
        _env_file=None,
        uploads_dir=temp_dir / "uploads",
        data_dir=temp_dir / "data",
        **overrides,
    )


class TestConfigDefaults:
    """Verify that FusionConfig provides sensible defaults."""

    def test_pipeline_defaults(self, temp_dir: Path):
        cfg = _config(temp_dir)
        assert cfg.vision_model == "gpt-4o"
        assert cfg.description_max_tokens == 150
        assert cfg.concept_max_tokens == 60
        assert cfg.concept_temperature == 1.2

    def test_primary_image_defaults(self, temp_dir: Path):
        cfg = _config(temp_dir)
        assert cfg.primary_image_model == "dall-e-3"
        assert cfg.image_size == "1024x1024"
        assert cfg.image_quality == "standard"

    def test_catalog_defaults(self, temp_dir: Path):
        cfg = _config(temp_dir)
        assert cfg.default_style == "realistic"
        assert cfg.default_model == "dall-e-3"

    def test_default_server_port(self, monkeypatch, temp_dir: Path):
        """Default server port should be 3100."""
        monkeypatch.delenv("IMAGEFUSION_SERVER_PORT", raising=False)
        assert _config(temp_dir).server_port == 3100

    def test_only_local_proxy_is_trusted(self, monkeypatch, temp_dir: Path):
        monkeypatch.delenv("IMAGEFUSION_FORWARDED_ALLOW_IPS", raising=False)
        assert _config(temp_dir).forwarded_allow_ips == "127.0.0.1"

    def test_admin_disabled_without_password(self, monkeypatch, temp_dir: Path):
        monkeypatch.delenv("IMAGEFUSION_ADMIN_PASSWORD", raising=False)
        cfg = _config(temp_dir)
        assert cfg.admin_password is None
        assert cfg.admin_enabled is False

    def test_admin_enabled(self, test_config: FusionConfig):
        assert test_config.admin_enabled is True

    def test_log_cap(self, test_config: FusionConfig):
        assert test_config.log_max_entries == 1000


class TestConfigEnvironment:
    """Verify IMAGEFUSION_* environment overrides."""

    def test_env_override(self, monkeypatch, temp_dir: Path):
        monkeypatch.setenv("IMAGEFUSION_DEFAULT_STYLE", "toy")
        monkeypatch.setenv("IMAGEFUSION_CONCEPT_TEMPERATURE", "0.7")
        cfg = _config(temp_dir)
        assert cfg.default_style == "toy"
        assert cfg.concept_temperature == 0.7

    def test_env_is_case_insensitive(self, monkeypatch, temp_dir: Path):
        monkeypatch.setenv("imagefusion_admin_username", "curator")
        assert _config(temp_dir).admin_username == "curator"


class TestConfigDirectoryCreation:
    """Verify that FusionConfig creates required directories."""

    def test_directories_created(self, test_config: FusionConfig):
        assert test_config.uploads_dir.is_dir()
        assert test_config.data_dir.is_dir()

    def test_creates_nested_directories(self, temp_dir: Path):
        """Config should create deeply nested directories via parents=True."""
        cfg = FusionConfig(
            _env_file=None,
            uploads_dir=temp_dir / "a" / "b" / "uploads",
            data_dir=temp_dir / "a" / "b" / "data",
        )
        assert cfg.uploads_dir.exists()
        assert cfg.data_dir.exists()

    def test_activity_log_path(self, test_config: FusionConfig):
        assert test_config.activity_log_path == test_config.data_dir / "activity_log.json"


class TestConfigValidation:
    """Verify Pydantic validation constraints on config fields."""

    @pytest.mark.parametrize("port", [80, 70000])
    def test_invalid_port(self, temp_dir: Path, port: int):
        with pytest.raises(Exception):
            _config(temp_dir, server_port=port)

    @pytest.mark.parametrize("temperature", [-0.1, 2.5])
    def test_invalid_temperature(self, temp_dir: Path, temperature: float):
        with pytest.raises(Exception):
            _config(temp_dir, concept_temperature=temperature)

    def test_invalid_image_quality(self, temp_dir: Path):
        with pytest.raises(Exception):
            _config(temp_dir, image_quality="ultra")

    def test_invalid_log_cap(self, temp_dir: Path):
        with pytest.raises(Exception):
            _config(temp_dir, log_max_entries=0)
