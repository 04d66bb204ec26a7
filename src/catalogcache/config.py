"""Configuration loading.

Settings are loaded in priority order (highest first):
  1. Constructor arguments
  2. Environment variables  (CATALOGCACHE__EDGE__MODE=on)
  3. catalogcache.yaml      (searched in cwd, then the platform config dir)
  4. Hardcoded defaults

The config file is optional; every field has a default.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Literal

import platformdirs
from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    YamlConfigSettingsSource,
)

_DEFAULT_CACHE_DIR = platformdirs.user_cache_dir("catalogcache")
_DEFAULT_DB_PATH = str(Path(_DEFAULT_CACHE_DIR) / "catalog.db")


def _find_config_file() -> str | None:
    """Return the path of the first catalogcache.yaml found, or None."""
    candidates = [
        Path("catalogcache.yaml"),
        Path(platformdirs.user_config_dir("catalogcache")) / "catalogcache.yaml",
    ]
    for path in candidates:
        if path.exists():
            return str(path)
    return None


class _Section(BaseModel):
    # A typo in a nested key must fail loudly instead of falling back to a default.
    model_config = ConfigDict(extra="forbid")


class CacheSettings(_Section):
    db_path: str = _DEFAULT_DB_PATH
    # Bumping the version orphans every durable entry written under the old one.
    version: str = "1.0"
    key_prefix: str = "catalog_cache_"
    list_ttl_seconds: float = Field(default=15 * 60, gt=0)
    category_ttl_seconds: float = Field(default=60 * 60, gt=0)
    detail_ttl_seconds: float = Field(default=10 * 60, gt=0)
    grace_seconds: float = Field(default=5 * 60, ge=0)
    max_entry_bytes: int = Field(default=512 * 1024, gt=0)
    max_total_bytes: int = Field(default=5 * 1024 * 1024, gt=0)
    sweep_interval_hours: int = Field(default=6, ge=0)


class OriginSettings(_Section):
    url: str | None = None
    api_key: str | None = None
    schema_name: str = "public"
    timeout_seconds: float = Field(default=15.0, gt=0)


class EdgeSettings(_Section):
    # "auto" enables the edge cache only under the production deploy context.
    mode: Literal["auto", "on", "off"] = "auto"
    base_url: str | None = None
    function: str = "cache-products"
    timeout_seconds: float = Field(default=10.0, gt=0)
    context_env: str = "CONTEXT"


class PrefetchSettings(_Section):
    concurrency: int = Field(default=3, ge=1)
    priority_count: int = Field(default=6, ge=0)
    timeout_seconds: float = Field(default=10.0, gt=0)


class NetworkSettings(_Section):
    effective_type: Literal["slow-2g", "2g", "3g", "4g"] | None = None
    save_data: bool = False
    refresh_seconds: float = Field(default=30.0, ge=0)


class LoggingSettings(_Section):
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    format: Literal["json", "text"] = "json"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        # Double-underscore separates nesting: CATALOGCACHE__CACHE__DB_PATH=/tmp/c.db
        env_prefix="CATALOGCACHE__",
        env_nested_delimiter="__",
        yaml_file=_find_config_file(),
        yaml_file_encoding="utf-8",
        extra="forbid",
    )

    cache: CacheSettings = CacheSettings()
    origin: OriginSettings = OriginSettings()
    edge: EdgeSettings = EdgeSettings()
    prefetch: PrefetchSettings = PrefetchSettings()
    network: NetworkSettings = NetworkSettings()
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
