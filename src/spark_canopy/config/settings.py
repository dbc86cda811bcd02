from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Callable, Dict, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from ..clustering.params import CanopyParams

_ENV_VAR_NAME = "SPARK_CANOPY_ENV"
_CONFIG_DIR_VAR = "SPARK_CANOPY_CONFIG_DIR"
_VALID_ENVS = {"local", "staging", "prod"}
_DEFAULT_ENV = "local"
_DEFAULT_CONFIG_DIR = Path("config")
_SECTION_CONFIG = ConfigDict(extra="ignore")
_SETTINGS_CONFIG = SettingsConfigDict(
    env_prefix="SPARK_CANOPY_",
    env_file=".env",
    env_nested_delimiter="__",
    extra="ignore",
)


def _select_env() -> str:
    env = (os.getenv(_ENV_VAR_NAME) or _DEFAULT_ENV).strip().lower()
    if env not in _VALID_ENVS:
        valid = ", ".join(sorted(_VALID_ENVS))
        raise ValueError(f"Invalid {_ENV_VAR_NAME}={env!r}. Valid values: {valid}")
    return env


def _config_dir() -> Path:
    return Path(os.getenv(_CONFIG_DIR_VAR) or _DEFAULT_CONFIG_DIR)


def load_yaml_file(path: Path) -> Dict[str, Any]:
    if not path.exists():
        return {}
    data = yaml.safe_load(path.read_text(encoding="utf-8"))
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"Expected a mapping at {path}")
    return data


def _merge_configs(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    merged: Dict[str, Any] = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge_configs(merged[key], value)
        else:
            merged[key] = value
    return merged


def _canonical_canopy_keys(data: Dict[str, Any]) -> Dict[str, Any]:
    canopy = data.get("canopy")
    if not isinstance(canopy, dict):
        return data
    section: Dict[str, Any] = {}
    for key, value in canopy.items():
        if str(key).replace("_", "").lower() == "distancemeasure":
            key = "distance_measure"
        section[key] = value
    return {**data, "canopy": section}


def _canonical_source(source: Callable[[], Dict[str, Any]]) -> Callable[[], Dict[str, Any]]:
    def _load() -> Dict[str, Any]:
        return _canonical_canopy_keys(source())

    _load.__name__ = type(source).__name__
    return _load


def _yaml_settings_source(*_args: object, **_kwargs: object) -> Dict[str, Any]:
    env_name = _select_env()
    config_dir = _config_dir()
    merged = _merge_configs(
        load_yaml_file(config_dir / "base.yaml"),
        load_yaml_file(config_dir / f"{env_name}.yaml"),
    )
    merged.setdefault("env", env_name)
    return _canonical_canopy_keys(merged)


class LoggingSettings(BaseModel):
    model_config = _SECTION_CONFIG

    level: str = "INFO"
    show_progress: bool = False

    @field_validator("level")
    @classmethod
    def _normalize_level(cls, value: str) -> str:
        level = str(value).strip().upper()
        allowed = {"DEBUG", "INFO", "WARN", "WARNING", "ERROR", "CRITICAL"}
        if level not in allowed:
            raise ValueError(f"Unsupported log level: {value!r}")
        return level


class SparkSettings(BaseModel):
    model_config = _SECTION_CONFIG

    app_name: str = "spark-canopy"
    master: Optional[str] = None
    shuffle_partitions: int = Field(default=8, ge=1)
    reduce_depth: int = Field(default=2, ge=1)


class Settings(BaseSettings):
    env: str = _DEFAULT_ENV
    canopy: CanopyParams = Field(default_factory=CanopyParams)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    spark: SparkSettings = Field(default_factory=SparkSettings)

    model_config = _SETTINGS_CONFIG

    @field_validator("env", mode="before")
    @classmethod
    def _normalize_env(cls, value: str) -> str:
        env = str(value).strip().lower() if value is not None else _DEFAULT_ENV
        if env not in _VALID_ENVS:
            valid = ", ".join(sorted(_VALID_ENVS))
            raise ValueError(f"Invalid {_ENV_VAR_NAME}={env!r}. Valid values: {valid}")
        return env

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        # Sources are deep-merged, so the metric alias must not survive in any of them.
        return (
            _canonical_source(init_settings),
            _canonical_source(env_settings),
            _canonical_source(dotenv_settings),
            _yaml_settings_source,
            file_secret_settings,
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings; use this instead of instantiating Settings directly."""
    return Settings()
