"""Configuration loading.

Settings are loaded in priority order (highest first):
  1. Constructor arguments
  2. Environment variables  (DOCSFETCHER__FETCHER__LIMIT=20)
  3. docs-fetcher.yaml      (searched in cwd, then platform config dir)
  4. Hardcoded defaults

The config file is optional; every field has a default.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Literal

import platformdirs
from pydantic import BaseModel
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    YamlConfigSettingsSource,
)

CONFIG_FILE_NAME = "docs-fetcher.yaml"

_DEFAULT_CACHE_ROOT = str(Path.home() / ".docs-fetcher" / "artifacts" / "cache")


def _find_config_file() -> str | None:
    """Return the path of the first docs-fetcher.yaml found, or None."""
    candidates = [
        Path(CONFIG_FILE_NAME),
        Path(platformdirs.user_config_dir("docs-fetcher")) / CONFIG_FILE_NAME,
    ]
    for path in candidates:
        if path.exists():
            return str(path)
    return None


class FetcherSettings(BaseModel):
    limit: int = 15  # packages per batch
    max_depth: int = 3  # pages per crawl run
    allowed_domains: list[str] = []  # extra domains on top of the seed host
    save_assets: bool = True
    max_assets: int = 50


class RendererSettings(BaseModel):
    headless: bool = True
    timeout_seconds: float = 30.0
    wait_until: Literal["load", "domcontentloaded", "networkidle", "commit"] = "networkidle"
    user_agent: str = "DocsFetcher/1.0"
    viewport_width: int = 1280
    viewport_height: int = 720


class ValidatorSettings(BaseModel):
    timeout_seconds: float = 10.0
    max_redirects: int = 5
    allowed_content_types: list[str] = ["text/html", "text/plain", "application/json"]


class ScoringWeights(BaseModel):
    freshness: float = 0.2
    size: float = 0.1
    language: float = 0.2
    readability: float = 0.3
    completeness: float = 0.2


class ScorerSettings(BaseModel):
    min_size: int = 1000  # bytes
    max_size: int = 1_000_000
    min_word_count: int = 100
    max_age_days: int = 365
    weights: ScoringWeights = ScoringWeights()


class CacheSettings(BaseModel):
    dir: str = _DEFAULT_CACHE_ROOT
    max_size_bytes: int = 100 * 1024 * 1024
    ttl_hours: float = 24 * 7
    cleanup_interval_hours: float = 1.0


class RegistrySettings(BaseModel):
    url: str = "https://registry.npmjs.org"
    package_page_url: str = "https://www.npmjs.com/package"
    timeout_seconds: float = 10.0


class RetrySettings(BaseModel):
    max_attempts: int = 3
    initial_delay_seconds: float = 1.0
    max_delay_seconds: float = 10.0
    backoff_factor: float = 2.0
    jitter: bool = True


class LoggingSettings(BaseModel):
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    format: Literal["json", "text"] = "text"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        # Double-underscore separates nesting: DOCSFETCHER__CACHE__DIR=/tmp/docs
        env_prefix="DOCSFETCHER__",
        env_nested_delimiter="__",
        yaml_file=_find_config_file(),
        yaml_file_encoding="utf-8",
    )

    fetcher: FetcherSettings = FetcherSettings()
    renderer: RendererSettings = RendererSettings()
    validator: ValidatorSettings = ValidatorSettings()
    scorer: ScorerSettings = ScorerSettings()
    cache: CacheSettings = CacheSettings()
    registry: RegistrySettings = RegistrySettings()
    retry: RetrySettings = RetrySettings()
    logging: LoggingSettings = LoggingSettings()

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
        **kwargs: Any,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return (
            init_settings,  # Constructor args (highest priority)
            env_settings,  # Environment variables
            YamlConfigSettingsSource(settings_cls),  # YAML file
            # dotenv and file secrets intentionally excluded
        )

    @property
    def cache_root(self) -> Path:
        return Path(self.cache.dir).expanduser()
