"""Layered configuration: environment, ``.env`` and YAML files."""

from spark_canopy.config.settings import (  # noqa: F401
    LoggingSettings,
    Settings,
    SparkSettings,
    get_settings,
)

__all__ = [
    "LoggingSettings",
    "Settings",
    "SparkSettings",
    "get_settings",
]
