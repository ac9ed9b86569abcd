"""Configuration from .sitemapper.toml, SITEMAPPER_* env vars and CLI flags.

Loading order: defaults → TOML file → env vars → CLI flags.
"""

from __future__ import annotations

import logging
import os
import tomllib
from pathlib import Path

from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger(__name__)

CONFIG_FILENAME = ".sitemapper.toml"
CONFIG_SEARCH_PATHS = [
    Path("."),
    Path.home() / ".config" / "sitemapper",
]

CRON_FREQUENCIES: dict[str, int] = {
    "5min": 5 * 60,
    "10min": 10 * 60,
    "15min": 15 * 60,
    "30min": 30 * 60,
    "hourly": 60 * 60,
    "2hourly": 2 * 60 * 60,
    "3hourly": 3 * 60 * 60,
}
DEFAULT_CRON_FREQUENCY = "15min"


class SiteConfig(BaseModel):
    """[site] section."""

    base_url: str = "http://localhost"
    public: bool = True


class StorageConfig(BaseModel):
    """[storage] section."""

    data_dir: str = "./.sitemapper"
    content_file: str = "content.json"

    @property
    def data_path(self) -> Path:
        return Path(self.data_dir)

    @property
    def content_path(self) -> Path:
        path = Path(self.content_file)
        return path if path.is_absolute() else self.data_path / path


class ProvidersConfig(BaseModel):
    """[providers] section."""

    post_types: list[str] = Field(default_factory=lambda: ["post"])
    include_pages: bool = False
    include_images: bool = True
    max_entries_per_partition: int = 500


class GenerationConfig(BaseModel):
    """[generation] section."""

    batch_size: int = 10
    poll_interval_seconds: float = 30.0

    @field_validator("batch_size")
    @classmethod
    def _positive_batch(cls, value: int) -> int:
        if value < 1:
            raise ValueError("batch_size must be at least 1")
        return value


class CronConfig(BaseModel):
    """[cron] section."""

    frequency: str = DEFAULT_CRON_FREQUENCY

    @field_validator("frequency")
    @classmethod
    def _known_frequency(cls, value: str) -> str:
        if value not in CRON_FREQUENCIES:
            raise ValueError(f"unknown cron frequency {value!r}")
        return value


class LoggingConfig(BaseModel):
    """[logging] section."""

    level: str = "INFO"


class SitemapperConfig(BaseModel):
    """Top-level configuration model."""

    site: SiteConfig = Field(default_factory=SiteConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    providers: ProvidersConfig = Field(default_factory=ProvidersConfig)
    generation: GenerationConfig = Field(default_factory=GenerationConfig)
    cron: CronConfig = Field(default_factory=CronConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


def load_config(path: str | Path | None = None) -> SitemapperConfig:
    """Load configuration from a TOML file.

    Search order:
    1. Explicit path (if provided)
    2. .sitemapper.toml in CWD
    3. ~/.config/sitemapper/config.toml

    Then overlay environment variables.
    """
    data: dict[str, object] = {}

    if path is not None:
        toml_path = Path(path)
        if toml_path.exists():
            data = _load_toml(toml_path)
        else:
            logger.warning("Config file not found: %s", toml_path)
    else:
        for search_dir in CONFIG_SEARCH_PATHS:
            candidate = search_dir / CONFIG_FILENAME
            if candidate.exists():
                data = _load_toml(candidate)
                logger.info("Loaded config from %s", candidate)
                break
        global_config = Path.home() / ".config" / "sitemapper" / "config.toml"
        if not data and global_config.exists():
            data = _load_toml(global_config)
            logger.info("Loaded config from %s", global_config)

    config = SitemapperConfig.model_validate(data) if data else SitemapperConfig()
    return _apply_env_vars(config)


def merge_cli_overrides(config: SitemapperConfig, **cli_kwargs: object) -> SitemapperConfig:
    """Overlay explicitly-set CLI flags onto the config.

    Only values that are not None override the config.
    """
    data = config.model_dump()

    mapping: dict[str, tuple[str, str]] = {
        "data_dir": ("storage", "data_dir"),
        "content_file": ("storage", "content_file"),
        "base_url": ("site", "base_url"),
        "batch_size": ("generation", "batch_size"),
        "log_level": ("logging", "level"),
    }

    for key, value in cli_kwargs.items():
        if value is None:
            continue
        if key in mapping:
            section, field = mapping[key]
            data[section][field] = value

    return SitemapperConfig.model_validate(data)


def _load_toml(path: Path) -> dict[str, object]:
    """Parse a TOML file, returning {} if it cannot be read."""
    try:
        with open(path, "rb") as f:
            return tomllib.load(f)
    except (tomllib.TOMLDecodeError, OSError) as exc:
        logger.warning("Failed to parse %s: %s", path, exc)
        return {}


def _apply_env_vars(config: SitemapperConfig) -> SitemapperConfig:
    """Overlay SITEMAPPER_* environment variables."""
    data = config.model_dump()

    env_mapping: dict[str, tuple[str, str]] = {
        "SITEMAPPER_DATA_DIR": ("storage", "data_dir"),
        "SITEMAPPER_CONTENT_FILE": ("storage", "content_file"),
        "SITEMAPPER_BASE_URL": ("site", "base_url"),
        "SITEMAPPER_CRON_FREQUENCY": ("cron", "frequency"),
        "SITEMAPPER_LOG_LEVEL": ("logging", "level"),
    }

    for env_var, (section, field) in env_mapping.items():
        value = os.environ.get(env_var)
        if value is not None:
            data[section][field] = value

    public_raw = os.environ.get("SITEMAPPER_SITE_PUBLIC")
    if public_raw is not None:
        data["site"]["public"] = public_raw.lower() in ("true", "1", "yes")
    batch_raw = os.environ.get("SITEMAPPER_BATCH_SIZE")
    if batch_raw is not None:
        data["generation"]["batch_size"] = int(batch_raw)

    return SitemapperConfig.model_validate(data)
